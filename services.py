from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session, selectinload

import budgets as budget_rules
import forecast as forecast_rules
import insights as insight_rules
import patterns as pattern_rules
import recurrence
from config import get_settings
from models import (
    Account,
    Budget,
    BudgetVersion,
    Category,
    ForecastItem,
    Pattern,
    RecurrenceFrequency,
    RecurringTransaction,
    SavingsAccount,
    Transaction,
    budget_categories,
)
from periods import current_month, local_today
from schemas import (
    AccountIn,
    BudgetIn,
    BudgetInsight,
    BudgetSummary,
    BudgetVersionIn,
    CategoryIn,
    CategoryStatistics,
    DetectionResult,
    ForecastItemIn,
    ForecastSummary,
    MatchResult,
    MonthlyStatistics,
    PatternIn,
    PatternMatchSummary,
    PatternRecord,
    RecurringTransactionUpdate,
    SavingsAccountIn,
    TransactionIn,
    UncategorizedStats,
)

logger = logging.getLogger(__name__)

RECURRING_DETECTION_FLAG = "recurring_detection"


def get_default_account_id(session: Session) -> int:
    account = session.scalars(
        select(Account).order_by(Account.is_default.desc(), Account.id.asc())
    ).first()
    if account is None:
        raise ValueError("Account not found")
    return account.id


class AccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Account]:
        return self.session.scalars(select(Account).order_by(Account.id)).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account:
            raise ValueError("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            name=data.name.strip(),
            iban=data.iban.strip().upper() if data.iban else None,
            is_default=False,
        )
        self.session.add(account)
        self.session.flush()
        if data.is_default:
            self._make_default(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def set_default_account(self, account_id: int) -> Account:
        account = self.get(account_id)
        self._make_default(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def _make_default(self, account: Account) -> None:
        # exactly one default; cleared in the same unit of work
        self.session.execute(
            update(Account)
            .where(Account.id != account.id, Account.is_default.is_(True))
            .values(is_default=False)
        )
        account.is_default = True


def _detach_patterns(session: Session, patterns: list[Pattern], field: str) -> None:
    """Clear one target on patterns whose target is being deleted.

    A pattern left without any target is deleted, and so is one whose
    remaining criteria and target already exist as another pattern.
    """
    other = "savings_account_id" if field == "category_id" else "category_id"
    for pattern in patterns:
        if getattr(pattern, other) is None:
            session.delete(pattern)
            continue
        setattr(pattern, field, None)
        new_hash = pattern_rules.hash_for(pattern)
        duplicate = session.scalars(
            select(Pattern.id).where(Pattern.unique_hash == new_hash, Pattern.id != pattern.id)
        ).first()
        if duplicate is not None:
            logger.info(f"pattern_merged: pattern_id={pattern.id} into={duplicate}")
            session.delete(pattern)
            continue
        pattern.unique_hash = new_hash


class CategoryService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.account_id == self.account_id)
            .order_by(Category.name.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.account_id != self.account_id:
            raise ValueError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalars(
            select(Category).where(
                Category.account_id == self.account_id,
                func.lower(Category.name) == name.lower(),
            )
        ).first()
        if existing:
            raise ValueError("Category already exists")
        category = Category(account_id=self.account_id, name=name, color=data.color)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        """Delete a category and detach everything pointing at it.

        Patterns that only classify into this category go with it; patterns
        that also target a savings account keep that target.
        """
        category = self.get(category_id)
        patterns = self.session.scalars(
            select(Pattern).where(Pattern.category_id == category.id)
        ).all()
        _detach_patterns(self.session, patterns, "category_id")

        self.session.execute(
            update(Transaction)
            .where(Transaction.category_id == category.id)
            .values(category_id=None)
        )
        self.session.execute(
            update(RecurringTransaction)
            .where(RecurringTransaction.category_id == category.id)
            .values(category_id=None)
        )
        self.session.execute(
            delete(ForecastItem).where(ForecastItem.category_id == category.id)
        )
        self.session.execute(
            delete(budget_categories).where(
                budget_categories.c.category_id == category.id
            )
        )
        self.session.delete(category)
        self.session.commit()


class SavingsAccountService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def get(self, savings_account_id: int) -> SavingsAccount:
        savings = self.session.get(SavingsAccount, savings_account_id)
        if not savings or savings.account_id != self.account_id:
            raise ValueError("Savings account not found")
        return savings

    def create(self, data: SavingsAccountIn) -> SavingsAccount:
        savings = SavingsAccount(
            account_id=self.account_id,
            name=data.name.strip(),
            target_amount_cents=data.target_amount_cents,
        )
        self.session.add(savings)
        self.session.commit()
        self.session.refresh(savings)
        return savings

    def list_all(self) -> list[SavingsAccount]:
        stmt = (
            select(SavingsAccount)
            .where(SavingsAccount.account_id == self.account_id)
            .order_by(SavingsAccount.name.asc())
        )
        return self.session.scalars(stmt).all()

    def delete(self, savings_account_id: int) -> None:
        savings = self.get(savings_account_id)
        patterns = self.session.scalars(
            select(Pattern).where(Pattern.savings_account_id == savings.id)
        ).all()
        _detach_patterns(self.session, patterns, "savings_account_id")
        self.session.execute(
            update(Transaction)
            .where(Transaction.savings_account_id == savings.id)
            .values(savings_account_id=None)
        )
        self.session.delete(savings)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def _check_targets(self, data: TransactionIn) -> None:
        if data.category_id is not None:
            CategoryService(self.session, self.account_id).get(data.category_id)
        if data.savings_account_id is not None:
            SavingsAccountService(self.session, self.account_id).get(
                data.savings_account_id
            )
        if data.parent_transaction_id is not None:
            self.get(data.parent_transaction_id)

    def create(self, data: TransactionIn, *, apply_patterns: bool = True) -> Transaction:
        self._check_targets(data)
        txn = Transaction(
            account_id=self.account_id,
            date=data.date,
            description=data.description.strip(),
            notes=data.notes,
            tag=data.tag.strip() if data.tag else None,
            counterparty_iban=data.counterparty_iban,
            transaction_type=data.transaction_type,
            amount_cents=data.amount_cents,
            balance_after_cents=data.balance_after_cents,
            category_id=data.category_id,
            savings_account_id=data.savings_account_id,
            parent_transaction_id=data.parent_transaction_id,
        )
        self.session.add(txn)
        self.session.flush()
        if apply_patterns:
            PatternService(self.session, self.account_id).apply_to(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.account_id != self.account_id:
            raise ValueError("Transaction not found")
        return txn

    def list_for_account(
        self, *, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[Transaction]:
        stmt = select(Transaction).where(Transaction.account_id == self.account_id)
        if start:
            stmt = stmt.where(Transaction.date >= start)
        if end:
            stmt = stmt.where(Transaction.date <= end)
        stmt = stmt.order_by(Transaction.date.asc(), Transaction.id.asc())
        return self.session.scalars(stmt).all()

    def monthly_statistics(
        self, months: Optional[int] = None, *, today: Optional[date] = None
    ) -> MonthlyStatistics:
        return insight_rules.monthly_statistics(
            self.list_for_account(),
            today_month=current_month(today=today),
            months=months,
        )


class PatternService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def list_all(self, *, enabled_only: bool = False) -> list[Pattern]:
        stmt = select(Pattern).where(Pattern.account_id == self.account_id)
        if enabled_only:
            stmt = stmt.where(Pattern.enabled.is_(True))
        return self.session.scalars(stmt.order_by(Pattern.id.asc())).all()

    def get(self, pattern_id: int) -> Pattern:
        pattern = self.session.get(Pattern, pattern_id)
        if not pattern or pattern.account_id != self.account_id:
            raise ValueError("Pattern not found")
        return pattern

    def _prepare(self, data: PatternIn, *, exclude_id: Optional[int] = None) -> PatternRecord:
        record = PatternRecord(account_id=self.account_id, **data.model_dump())
        pattern_rules.validate_pattern(record, require_target=True)
        if record.category_id is not None:
            CategoryService(self.session, self.account_id).get(record.category_id)
        if record.savings_account_id is not None:
            SavingsAccountService(self.session, self.account_id).get(
                record.savings_account_id
            )
        record.unique_hash = pattern_rules.hash_for(record)
        stmt = select(Pattern).where(Pattern.unique_hash == record.unique_hash)
        if exclude_id is not None:
            stmt = stmt.where(Pattern.id != exclude_id)
        if self.session.scalars(stmt).first():
            raise pattern_rules.DuplicatePattern("Pattern already exists")
        return record

    def create(self, data: PatternIn) -> Pattern:
        record = self._prepare(data)
        pattern = Pattern(**record.model_dump(exclude={"id"}))
        self.session.add(pattern)
        self.session.commit()
        self.session.refresh(pattern)
        return pattern

    def update(self, pattern_id: int, data: PatternIn) -> Pattern:
        pattern = self.get(pattern_id)
        record = self._prepare(data, exclude_id=pattern.id)
        for field, value in record.model_dump(exclude={"id", "account_id"}).items():
            setattr(pattern, field, value)
        self.session.commit()
        self.session.refresh(pattern)
        return pattern

    def toggle(self, pattern_id: int, enabled: bool) -> None:
        pattern = self.get(pattern_id)
        pattern.enabled = enabled
        self.session.commit()

    def delete(self, pattern_id: int) -> None:
        pattern = self.get(pattern_id)
        self.session.delete(pattern)
        self.session.commit()

    def _transactions(self) -> list[Transaction]:
        return TransactionService(self.session, self.account_id).list_for_account()

    def preview(self, data: PatternIn) -> PatternMatchSummary:
        record = PatternRecord(account_id=self.account_id, **data.model_dump())
        return pattern_rules.match_summary(self._transactions(), record)

    def conflicts_for(self, transaction_id: int) -> MatchResult:
        txn = TransactionService(self.session, self.account_id).get(transaction_id)
        return pattern_rules.find_conflicts(txn, self.list_all(enabled_only=True))

    def apply_to(self, txn: Transaction) -> MatchResult:
        """Classify a transaction with the enabled patterns that match it.

        Conflicting matches are reported and left for the user.
        """
        return self._apply(txn, self.list_all(enabled_only=True))

    def assign(self, pattern_id: int) -> int:
        pattern = self.get(pattern_id)
        updated = 0
        for txn in self._transactions():
            changes = pattern_rules.assignment_for(txn, pattern)
            if not changes:
                continue
            for field, value in changes.items():
                setattr(txn, field, value)
            updated += 1
        self.session.commit()
        logger.info(f"pattern_assign: pattern_id={pattern_id} updated={updated}")
        return updated

    def assign_all(self) -> dict[str, int]:
        candidates = self.list_all(enabled_only=True)
        updated = 0
        conflicts = 0
        for txn in self._transactions():
            before = (txn.category_id, txn.savings_account_id)
            if self._apply(txn, candidates).conflict:
                conflicts += 1
                continue
            if (txn.category_id, txn.savings_account_id) != before:
                updated += 1
        self.session.commit()
        return {"updated": updated, "conflicts": conflicts}

    def _apply(self, txn: Transaction, candidates: list[Pattern]) -> MatchResult:
        result = pattern_rules.find_conflicts(txn, candidates)
        if result.conflict:
            return result
        by_id = {pattern.id: pattern for pattern in candidates}
        for pattern_id in result.matched_pattern_ids:
            for field, value in pattern_rules.assignment_for(txn, by_id[pattern_id]).items():
                setattr(txn, field, value)
        return result


class RecurringTransactionService:
    def __init__(
        self,
        session: Session,
        account_id: Optional[int] = None,
        *,
        is_enabled: Optional[Callable[[str], bool]] = None,
    ) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)
        self.is_enabled = is_enabled or get_settings().is_enabled

    def list(
        self,
        *,
        frequency: Optional[RecurrenceFrequency] = None,
        active: Optional[bool] = None,
    ) -> list[RecurringTransaction]:
        stmt = select(RecurringTransaction).where(
            RecurringTransaction.account_id == self.account_id
        )
        if frequency is not None:
            stmt = stmt.where(RecurringTransaction.frequency == frequency)
        if active is not None:
            stmt = stmt.where(RecurringTransaction.is_active.is_(active))
        stmt = stmt.order_by(
            RecurringTransaction.next_expected.asc(), RecurringTransaction.id.asc()
        )
        return self.session.scalars(stmt).all()

    def get(self, recurring_id: int) -> RecurringTransaction:
        row = self.session.get(RecurringTransaction, recurring_id)
        if not row or row.account_id != self.account_id:
            raise ValueError("Recurring transaction not found")
        return row

    def detect(self, *, force: bool = False, today: Optional[date] = None) -> DetectionResult:
        if not self.is_enabled(RECURRING_DETECTION_FLAG):
            logger.info(f"recurring_detect_disabled: account_id={self.account_id}")
            return DetectionResult()

        settings = get_settings()
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        result = recurrence.detect(
            self.account_id,
            transactions,
            today=today,
            lookback_months=settings.lookback_months,
            min_confidence=settings.min_confidence,
        )
        plan = recurrence.plan_upsert(self.list(), result.recurring, force=force)

        if plan.delete_ids:
            self.session.execute(
                delete(RecurringTransaction).where(
                    RecurringTransaction.id.in_(plan.delete_ids)
                )
            )
            self.session.flush()
        for recurring_id, detected in plan.update:
            row = self.get(recurring_id)
            for field in recurrence.STATISTIC_FIELDS:
                setattr(row, field, getattr(detected, field))
        for detected in plan.create:
            self.session.add(RecurringTransaction(**detected.model_dump(exclude={"id"})))
        self.session.commit()

        logger.info(
            f"recurring_detect_saved: account_id={self.account_id} force={force} "
            f"created={len(plan.create)} updated={len(plan.update)} "
            f"deleted={len(plan.delete_ids)}"
        )
        return result

    def update(self, recurring_id: int, data: RecurringTransactionUpdate) -> RecurringTransaction:
        row = self.get(recurring_id)
        if data.display_name is not None:
            row.display_name = data.display_name.strip()
        if data.category_id is not None:
            CategoryService(self.session, self.account_id).get(data.category_id)
            row.category_id = data.category_id
        if data.is_active is not None:
            row.is_active = data.is_active
            row.user_deactivated = not data.is_active
        self.session.commit()
        self.session.refresh(row)
        return row

    def deactivate(self, recurring_id: int) -> None:
        row = self.get(recurring_id)
        row.is_active = False
        row.user_deactivated = True
        self.session.commit()

    def upcoming(self, *, days: int = 30, today: Optional[date] = None) -> list[RecurringTransaction]:
        return recurrence.upcoming(self.list(active=True), today=today or local_today(), days=days)

    def overdue(self, *, today: Optional[date] = None) -> list[RecurringTransaction]:
        return recurrence.overdue(self.list(active=True), today=today or local_today())

    def summary(self) -> dict[str, object]:
        return recurrence.summarize(self.list())

    def grouped_by_frequency(self) -> dict[RecurrenceFrequency, list[RecurringTransaction]]:
        return recurrence.group_by_frequency(self.list())

    def linked_transactions(self, recurring_id: int) -> list[Transaction]:
        row = self.get(recurring_id)
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return recurrence.linked_transactions(row, transactions)


class BudgetService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def list_all(self) -> list[Budget]:
        stmt = (
            select(Budget)
            .options(selectinload(Budget.versions), selectinload(Budget.categories))
            .where(Budget.account_id == self.account_id)
            .order_by(Budget.name.asc(), Budget.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, budget_id: int) -> Budget:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.account_id != self.account_id:
            raise ValueError("Budget not found")
        return budget

    def _categories(self, category_ids: list[int]) -> list[Category]:
        categories = CategoryService(self.session, self.account_id)
        return [categories.get(category_id) for category_id in dict.fromkeys(category_ids)]

    def create(
        self, data: BudgetIn, initial_version: Optional[BudgetVersionIn] = None
    ) -> Budget:
        budget = Budget(
            account_id=self.account_id,
            name=data.name.strip(),
            budget_type=data.budget_type,
            icon=data.icon,
            is_active=True,
        )
        budget.categories = self._categories(data.category_ids)
        self.session.add(budget)
        self.session.flush()
        if initial_version is not None:
            self._add_version(budget, initial_version)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def assign_categories(self, budget_id: int, category_ids: list[int]) -> Budget:
        budget = self.get(budget_id)
        budget.categories = self._categories(category_ids)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def set_active(self, budget_id: int, is_active: bool) -> None:
        budget = self.get(budget_id)
        budget.is_active = is_active
        self.session.commit()

    def delete(self, budget_id: int) -> None:
        budget = self.get(budget_id)
        self.session.execute(delete(ForecastItem).where(ForecastItem.budget_id == budget.id))
        self.session.delete(budget)
        self.session.commit()

    def _add_version(self, budget: Budget, data: BudgetVersionIn) -> BudgetVersion:
        closures = budget_rules.plan_version_insert(
            budget.versions, data.effective_from_month, data.effective_until_month
        )
        by_id = {version.id: version for version in budget.versions}
        for version_id, until_month in closures:
            by_id[version_id].effective_until_month = until_month
        version = BudgetVersion(
            monthly_amount_cents=data.monthly_amount_cents,
            effective_from_month=data.effective_from_month,
            effective_until_month=data.effective_until_month,
            change_reason=data.change_reason,
        )
        budget.versions.append(version)
        self.session.flush()
        return version

    def add_version(self, budget_id: int, data: BudgetVersionIn) -> BudgetVersion:
        budget = self.get(budget_id)
        version = self._add_version(budget, data)
        self.session.commit()
        self.session.refresh(version)
        return version

    def classify(self, budget_id: int, month: Optional[str] = None) -> budget_rules.BudgetState:
        return budget_rules.classify(self.get(budget_id), month or current_month())

    def active_and_older(self) -> tuple[list[Budget], list[Budget]]:
        return budget_rules.partition_budgets(self.list_all())

    def summaries_for_month(self, month: Optional[str] = None) -> list[BudgetSummary]:
        month = month or current_month()
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return budget_rules.summarize(
            self.account_id,
            self.list_all(),
            month,
            transactions,
            history_months=get_settings().history_months,
        )

    def uncategorized_stats(self, month: Optional[str] = None) -> UncategorizedStats:
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return budget_rules.uncategorized_stats(transactions, month or current_month())

    def normal(self, budget_id: int, month: Optional[str] = None, months: int = 12) -> int:
        budget = self.get(budget_id)
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return insight_rules.compute_normal(budget, transactions, month or current_month(), months)

    def insights(self, month: Optional[str] = None, *, limit: Optional[int] = 3) -> list[BudgetInsight]:
        active, _ = self.active_and_older()
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return insight_rules.compute_insights(
            active, transactions, month or current_month(), limit=limit
        )

    def category_statistics(
        self,
        category_ids: list[int],
        *,
        period: str = "1y",
        include_current_month: bool = False,
        include_breakdown: bool = False,
        today: Optional[date] = None,
    ) -> CategoryStatistics:
        categories = self._categories(category_ids)
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        return insight_rules.category_statistics(
            transactions,
            [category.id for category in categories],
            today_month=current_month(today=today),
            period=period,
            include_current_month=include_current_month,
            include_breakdown=include_breakdown,
            category_names={category.id: category.name for category in categories},
        )


class ForecastService:
    def __init__(self, session: Session, account_id: Optional[int] = None) -> None:
        self.session = session
        self.account_id = account_id or get_default_account_id(session)

    def list_items(self) -> list[ForecastItem]:
        stmt = (
            select(ForecastItem)
            .where(ForecastItem.account_id == self.account_id)
            .order_by(ForecastItem.position.asc(), ForecastItem.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, item_id: int) -> ForecastItem:
        item = self.session.get(ForecastItem, item_id)
        if not item or item.account_id != self.account_id:
            raise ValueError("Forecast item not found")
        return item

    def add_item(self, data: ForecastItemIn) -> ForecastItem:
        if (data.budget_id is None) == (data.category_id is None):
            raise ValueError("Forecast item needs either a budget or a category")
        if data.budget_id is not None:
            BudgetService(self.session, self.account_id).get(data.budget_id)
        else:
            CategoryService(self.session, self.account_id).get(data.category_id)
        last_position = self.session.scalar(
            select(func.max(ForecastItem.position)).where(
                ForecastItem.account_id == self.account_id
            )
        )
        item = ForecastItem(
            account_id=self.account_id,
            budget_id=data.budget_id,
            category_id=data.category_id,
            item_type=data.item_type,
            expected_amount_cents=data.expected_amount_cents,
            position=(last_position + 1) if last_position is not None else 0,
            custom_name=data.custom_name,
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update_item(
        self,
        item_id: int,
        *,
        expected_amount_cents: Optional[int] = None,
        custom_name: Optional[str] = None,
        position: Optional[int] = None,
    ) -> ForecastItem:
        item = self.get(item_id)
        if expected_amount_cents is not None:
            item.expected_amount_cents = expected_amount_cents
        if custom_name is not None:
            item.custom_name = custom_name.strip() or None
        if position is not None:
            item.position = position
        self.session.commit()
        self.session.refresh(item)
        return item

    def remove_item(self, item_id: int) -> None:
        item = self.get(item_id)
        self.session.delete(item)
        self.session.commit()

    def _context(self) -> tuple[list[Transaction], list[Budget]]:
        transactions = TransactionService(self.session, self.account_id).list_for_account()
        budgets = BudgetService(self.session, self.account_id).list_all()
        return transactions, budgets

    def forecast(self, month: Optional[str] = None) -> ForecastSummary:
        transactions, budgets = self._context()
        names = {
            category.id: category.name
            for category in CategoryService(self.session, self.account_id).list_all()
        }
        return forecast_rules.build_forecast(
            self.list_items(),
            month or current_month(),
            transactions,
            budgets,
            forecast_rules.latest_balance_cents(transactions),
            category_names=names,
        )

    def reset_to_median(self, item_id: int, month: Optional[str] = None) -> ForecastItem:
        item = self.get(item_id)
        transactions, budgets = self._context()
        item.expected_amount_cents = forecast_rules.item_median_cents(
            item,
            month or current_month(),
            transactions,
            {budget.id: budget for budget in budgets},
            get_settings().history_months,
        )
        self.session.commit()
        self.session.refresh(item)
        return item
