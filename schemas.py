import datetime as dt
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from models import (
    BudgetType,
    ForecastItemType,
    MatchType,
    RecurrenceFrequency,
    TransactionType,
)

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


class TransactionRecord(BaseModel):
    """A transaction as the matching, detection and summary code sees it.

    ``date`` is kept loose so rows imported with unreadable dates can still be
    handed to the detector, which skips and reports them.
    """

    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    account_id: int
    date: Union[dt.date, str]
    description: str = ""
    notes: Optional[str] = None
    tag: Optional[str] = None
    transaction_type: TransactionType
    amount_cents: int
    balance_after_cents: Optional[int] = None
    category_id: Optional[int] = None
    savings_account_id: Optional[int] = None
    parent_transaction_id: Optional[int] = None


class PatternRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    account_id: int
    description: Optional[str] = None
    description_match_type: MatchType = MatchType.like
    notes: Optional[str] = None
    notes_match_type: MatchType = MatchType.like
    tag: Optional[str] = None
    transaction_type: Optional[TransactionType] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    category_id: Optional[int] = None
    savings_account_id: Optional[int] = None
    strict: bool = False
    enabled: bool = True
    unique_hash: Optional[str] = None


class MatchResult(BaseModel):
    matched_pattern_ids: list[int] = Field(default_factory=list)
    conflict: bool = False


class PatternMatchSummary(BaseModel):
    total: int = 0
    unassigned: int = 0
    assigned_same: int = 0
    assigned_other: int = 0
    matched_ids: list[int] = Field(default_factory=list)
    conflicting_ids: list[int] = Field(default_factory=list)


class RecurringTransactionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    account_id: int
    merchant_pattern: str
    display_name: str
    transaction_type: TransactionType
    predicted_amount_cents: int
    amount_variance: float
    frequency: RecurrenceFrequency
    confidence_score: float
    interval_consistency: float
    occurrence_count: int
    last_occurrence: dt.date
    next_expected: dt.date
    is_active: bool = True
    user_deactivated: bool = False
    category_id: Optional[int] = None


class DetectionResult(BaseModel):
    recurring: list[RecurringTransactionOut] = Field(default_factory=list)
    skipped_transaction_ids: list[Optional[int]] = Field(default_factory=list)
    insufficient_groups: int = 0

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_transaction_ids)


class BudgetVersionRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    monthly_amount_cents: int = Field(..., ge=0)
    effective_from_month: str = Field(..., pattern=MONTH_PATTERN)
    effective_until_month: Optional[str] = Field(default=None, pattern=MONTH_PATTERN)
    is_current: Optional[bool] = None
    change_reason: Optional[str] = None


class BudgetRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    account_id: int
    name: str
    budget_type: BudgetType = BudgetType.expense
    icon: Optional[str] = None
    is_active: bool = True
    category_ids: list[int] = Field(default_factory=list)
    versions: list[BudgetVersionRecord] = Field(default_factory=list)


class BudgetSummary(BaseModel):
    budget_id: Optional[int]
    budget_name: str
    budget_type: BudgetType
    month_year: str
    allocated_amount_cents: int
    spent_amount_cents: int
    remaining_amount_cents: int
    spent_percentage: float
    is_overspent: bool
    status: Literal["excellent", "good", "warning", "over"]
    category_count: int
    historical_median_cents: int
    trend_percentage: float
    trend_direction: Literal["increasing", "decreasing", "stable"]


class UncategorizedStats(BaseModel):
    month_year: str
    total_amount_cents: int = 0
    count: int = 0


class MonthTotal(BaseModel):
    month: str
    total_cents: int


class MonthlyStatistics(BaseModel):
    median_cents: int = 0
    trimmed_mean_cents: int = 0
    iqr_mean_cents: int = 0
    weighted_median_cents: int = 0
    average_cents: int = 0
    month_count: int = 0
    monthly_totals: list[MonthTotal] = Field(default_factory=list)


class BudgetInsight(BaseModel):
    budget_id: Optional[int]
    budget_name: str
    month_year: str
    current_cents: int
    normal_cents: int
    average_cents: int
    previous_month_cents: Optional[int] = None
    last_year_cents: Optional[int] = None
    delta_percentage: float = 0.0
    level: Literal["stable", "slight", "anomaly"] = "stable"
    sparkline_cents: list[int] = Field(default_factory=list)


class CategoryBreakdown(BaseModel):
    category_id: int
    category_name: str
    average_cents: int
    median_cents: int
    total_cents: int
    monthly_totals: list[MonthTotal] = Field(default_factory=list)


class CategoryStatistics(BaseModel):
    period: str
    include_current_month: bool = False
    average_cents: int = 0
    median_cents: int = 0
    month_count: int = 0
    history: list[MonthTotal] = Field(default_factory=list)
    breakdown: Optional[list[CategoryBreakdown]] = None


class ForecastItemRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    budget_id: Optional[int] = None
    category_id: Optional[int] = None
    item_type: ForecastItemType
    expected_amount_cents: int = 0
    position: int = 0
    custom_name: Optional[str] = None


class ForecastLine(BaseModel):
    item_id: Optional[int]
    name: str
    item_type: ForecastItemType
    expected_amount_cents: int
    actual_amount_cents: int
    difference_cents: int


class ForecastSummary(BaseModel):
    month_year: str
    income: list[ForecastLine] = Field(default_factory=list)
    expenses: list[ForecastLine] = Field(default_factory=list)
    expected_income_cents: int = 0
    actual_income_cents: int = 0
    expected_expenses_cents: int = 0
    actual_expenses_cents: int = 0
    expected_result_cents: int = 0
    actual_result_cents: int = 0
    current_balance_cents: int = 0
    projected_balance_cents: int = 0


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    iban: Optional[str] = Field(default=None, max_length=34)
    is_default: bool = False


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=7)


class SavingsAccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    target_amount_cents: Optional[int] = Field(default=None, ge=0)


class TransactionIn(BaseModel):
    date: dt.date
    description: str = Field(default="", max_length=500)
    notes: Optional[str] = None
    tag: Optional[str] = Field(default=None, max_length=50)
    counterparty_iban: Optional[str] = Field(default=None, max_length=34)
    transaction_type: TransactionType
    amount_cents: int = Field(..., ge=0)
    balance_after_cents: Optional[int] = None
    category_id: Optional[int] = None
    savings_account_id: Optional[int] = None
    parent_transaction_id: Optional[int] = None


class PatternIn(BaseModel):
    description: Optional[str] = Field(default=None, max_length=255)
    description_match_type: MatchType = MatchType.like
    notes: Optional[str] = Field(default=None, max_length=255)
    notes_match_type: MatchType = MatchType.like
    tag: Optional[str] = Field(default=None, max_length=50)
    transaction_type: Optional[TransactionType] = None
    min_amount_cents: Optional[int] = Field(default=None, ge=0)
    max_amount_cents: Optional[int] = Field(default=None, ge=0)
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    category_id: Optional[int] = None
    savings_account_id: Optional[int] = None
    strict: bool = False
    enabled: bool = True


class RecurringTransactionUpdate(BaseModel):
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    category_id: Optional[int] = None
    is_active: Optional[bool] = None


class BudgetIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    budget_type: BudgetType = BudgetType.expense
    icon: Optional[str] = Field(default=None, max_length=50)
    category_ids: list[int] = Field(default_factory=list)


class BudgetVersionIn(BaseModel):
    monthly_amount_cents: int = Field(..., ge=0)
    effective_from_month: str = Field(..., pattern=MONTH_PATTERN)
    effective_until_month: Optional[str] = Field(default=None, pattern=MONTH_PATTERN)
    change_reason: Optional[str] = Field(default=None, max_length=255)


class ForecastItemIn(BaseModel):
    budget_id: Optional[int] = None
    category_id: Optional[int] = None
    item_type: ForecastItemType
    expected_amount_cents: int = 0
    custom_name: Optional[str] = Field(default=None, max_length=100)
