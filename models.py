import datetime as dt
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    debit = "debit"
    credit = "credit"


class MatchType(str, Enum):
    exact = "EXACT"
    like = "LIKE"


class BudgetType(str, Enum):
    expense = "EXPENSE"
    income = "INCOME"
    project = "PROJECT"


class ForecastItemType(str, Enum):
    income = "INCOME"
    expense = "EXPENSE"


class RecurrenceFrequency(str, Enum):
    weekly = "weekly"
    biweekly = "biweekly"
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"


def _value_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


MATCH_TYPE_ENUM = _value_enum(MatchType, "matchtype")
BUDGET_TYPE_ENUM = _value_enum(BudgetType, "budgettype")
FORECAST_ITEM_TYPE_ENUM = _value_enum(ForecastItemType, "forecastitemtype")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    iban: Mapped[Optional[str]] = mapped_column(String(34), unique=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(7))

    __table_args__ = (
        UniqueConstraint("account_id", "name", name="uq_category_account_name"),
    )


class SavingsAccount(Base, TimestampMixin):
    __tablename__ = "savings_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    target_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    tag: Mapped[Optional[str]] = mapped_column(String(50))
    counterparty_iban: Mapped[Optional[str]] = mapped_column(String(34))
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after_cents: Mapped[Optional[int]] = mapped_column(Integer)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    savings_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("savings_accounts.id")
    )
    parent_transaction_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("transactions.id")
    )

    category: Mapped[Optional["Category"]] = relationship("Category")
    savings_account: Mapped[Optional["SavingsAccount"]] = relationship(
        "SavingsAccount"
    )
    children: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="parent"
    )
    parent: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", back_populates="children", remote_side="Transaction.id"
    )

    __table_args__ = (
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_account_category_date", "account_id", "category_id", "date"),
        CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )


class Pattern(Base, TimestampMixin):
    __tablename__ = "patterns"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    description_match_type: Mapped[MatchType] = mapped_column(
        MATCH_TYPE_ENUM, nullable=False, default=MatchType.like
    )
    notes: Mapped[Optional[str]] = mapped_column(Text)
    notes_match_type: Mapped[MatchType] = mapped_column(
        MATCH_TYPE_ENUM, nullable=False, default=MatchType.like
    )
    tag: Mapped[Optional[str]] = mapped_column(String(50))
    transaction_type: Mapped[Optional[TransactionType]] = mapped_column(
        SAEnum(TransactionType)
    )
    min_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    max_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    savings_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("savings_accounts.id")
    )
    strict: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    unique_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    category: Mapped[Optional["Category"]] = relationship("Category")
    savings_account: Mapped[Optional["SavingsAccount"]] = relationship(
        "SavingsAccount"
    )

    __table_args__ = (
        CheckConstraint(
            "min_amount_cents IS NULL OR max_amount_cents IS NULL "
            "OR min_amount_cents <= max_amount_cents",
            name="ck_pattern_amount_range",
        ),
    )


class RecurringTransaction(Base, TimestampMixin):
    __tablename__ = "recurring_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    merchant_pattern: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    predicted_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    amount_variance: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    frequency: Mapped[RecurrenceFrequency] = mapped_column(
        SAEnum(RecurrenceFrequency), nullable=False
    )
    confidence_score: Mapped[float] = mapped_column(Float, nullable=False)
    interval_consistency: Mapped[float] = mapped_column(Float, nullable=False)
    occurrence_count: Mapped[int] = mapped_column(Integer, nullable=False)
    last_occurrence: Mapped[dt.date] = mapped_column(Date, nullable=False)
    next_expected: Mapped[dt.date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # set by the user; the detector only ever touches is_active
    user_deactivated: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        UniqueConstraint(
            "account_id",
            "merchant_pattern",
            "transaction_type",
            name="uq_recurring_account_merchant_type",
        ),
        Index("ix_recurring_account_next", "account_id", "next_expected"),
    )


budget_categories = Table(
    "budget_categories",
    Base.metadata,
    Column("budget_id", Integer, ForeignKey("budgets.id"), primary_key=True),
    Column("category_id", Integer, ForeignKey("categories.id"), primary_key=True),
)


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    budget_type: Mapped[BudgetType] = mapped_column(
        BUDGET_TYPE_ENUM, nullable=False, default=BudgetType.expense
    )
    icon: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    categories: Mapped[list["Category"]] = relationship(
        "Category", secondary="budget_categories"
    )
    versions: Mapped[list["BudgetVersion"]] = relationship(
        "BudgetVersion",
        back_populates="budget",
        cascade="all, delete-orphan",
        order_by="BudgetVersion.effective_from_month",
    )

    @property
    def category_ids(self) -> list[int]:
        return [category.id for category in self.categories]


# is_current is never stored; budgets.is_current derives it from the month
class BudgetVersion(Base, TimestampMixin):
    __tablename__ = "budget_versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.id"), nullable=False)
    monthly_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    effective_from_month: Mapped[str] = mapped_column(String(7), nullable=False)
    effective_until_month: Mapped[Optional[str]] = mapped_column(String(7))
    change_reason: Mapped[Optional[str]] = mapped_column(Text)

    budget: Mapped["Budget"] = relationship("Budget", back_populates="versions")

    __table_args__ = (
        Index("ix_budget_versions_budget_from", "budget_id", "effective_from_month"),
        CheckConstraint(
            "monthly_amount_cents >= 0", name="ck_budget_version_amount_positive"
        ),
    )


class ForecastItem(Base, TimestampMixin):
    __tablename__ = "forecast_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    budget_id: Mapped[Optional[int]] = mapped_column(ForeignKey("budgets.id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    item_type: Mapped[ForecastItemType] = mapped_column(
        FORECAST_ITEM_TYPE_ENUM, nullable=False
    )
    expected_amount_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    custom_name: Mapped[Optional[str]] = mapped_column(String(100))

    budget: Mapped[Optional["Budget"]] = relationship("Budget")
    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint(
            "(budget_id IS NULL) <> (category_id IS NULL)",
            name="ck_forecast_item_single_source",
        ),
    )
