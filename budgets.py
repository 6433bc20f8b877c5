import logging
from collections import defaultdict
from enum import Enum
from typing import Iterable, Optional, Sequence

from models import BudgetType, TransactionType
from periods import add_months, current_month, is_month, month_of, parse_day, previous_month
from schemas import BudgetSummary, UncategorizedStats
from stats import median_cents

logger = logging.getLogger(__name__)

STATUS_GOOD_THRESHOLD = 50
STATUS_WARNING_THRESHOLD = 80
STATUS_OVER_THRESHOLD = 100
TREND_THRESHOLD = 10
OPEN_END_MONTH = "9999-12"


class BudgetState(str, Enum):
    future = "FUTURE"
    active = "ACTIVE"
    expired = "EXPIRED"
    indeterminate = "INDETERMINATE"


class InvalidVersionRange(ValueError):
    pass


class VersionOverlap(ValueError):
    pass


def is_effective(version, month: str) -> bool:
    if version.effective_from_month > month:
        return False
    until = version.effective_until_month
    return until is None or until >= month


def is_current(version, today_month: Optional[str] = None) -> bool:
    flag = getattr(version, "is_current", None)
    if flag is not None:
        return flag
    return is_effective(version, today_month or current_month())


def is_currently_active(budget, today_month: Optional[str] = None) -> bool:
    month = today_month or current_month()
    return any(is_current(version, month) for version in budget.versions)


def effective_version(budget, month: str):
    candidates = [v for v in budget.versions if is_effective(v, month)]
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.warning(
            f"budget_version_overlap: budget_id={budget.id} month={month} "
            f"versions={[v.id for v in candidates]}"
        )
    return max(candidates, key=lambda v: (v.effective_from_month, v.id or 0))


def allocated_cents(budget, month: str) -> int:
    version = effective_version(budget, month)
    return version.monthly_amount_cents if version is not None else 0


def classify(budget, reference_month: Optional[str] = None) -> BudgetState:
    """Resolve a budget's lifecycle state for a month.

    Months are compared as YYYY-MM strings. A budget without versions is a
    data problem; it is reported as indeterminate rather than guessed at.
    """
    month = reference_month or current_month()
    versions = list(budget.versions)
    if not versions:
        logger.warning(f"budget_without_versions: budget_id={budget.id}")
        return BudgetState.indeterminate
    if any(is_effective(v, month) for v in versions):
        return BudgetState.active
    if all(v.effective_from_month > month for v in versions):
        return BudgetState.future
    if all(v.effective_until_month is not None and v.effective_until_month < month for v in versions):
        return BudgetState.expired
    # ended versions behind, a later one still to start
    return BudgetState.future


def validate_version_range(from_month: str, until_month: Optional[str]) -> None:
    if not is_month(from_month):
        raise InvalidVersionRange("Effective from month must be YYYY-MM")
    if until_month is None:
        return
    if not is_month(until_month):
        raise InvalidVersionRange("Effective until month must be YYYY-MM")
    if from_month > until_month:
        raise InvalidVersionRange("Effective from month must not be after until month")


def plan_version_insert(
    existing: Iterable, new_from: str, new_until: Optional[str]
) -> list[tuple[int, str]]:
    """Return (version_id, until_month) closures needed before inserting.

    An open-ended version that starts before the new one is closed the month
    before it. Any other overlap is rejected.
    """
    validate_version_range(new_from, new_until)
    closures: list[tuple[int, str]] = []
    new_end = new_until or OPEN_END_MONTH
    for version in existing:
        if version.effective_until_month is None and version.effective_from_month < new_from:
            closures.append((version.id, previous_month(new_from)))
            continue
        end = version.effective_until_month or OPEN_END_MONTH
        if version.effective_from_month <= new_end and end >= new_from:
            raise VersionOverlap(
                f"Version overlaps existing version starting {version.effective_from_month}"
            )
    return closures


def partition_budgets(budgets: Iterable) -> tuple[list, list]:
    active: list = []
    older: list = []
    for budget in budgets:
        if budget.budget_type == BudgetType.project:
            continue
        (active if budget.is_active else older).append(budget)
    return active, older


def _signed_amount(txn) -> int:
    amount = abs(txn.amount_cents)
    return amount if txn.transaction_type == TransactionType.debit else -amount


def _effective_amounts(transactions: Sequence) -> list[tuple[object, int]]:
    """Pair each transaction with the signed amount it contributes.

    A split parent only keeps what its categorized children do not cover.
    """
    covered: dict[int, int] = defaultdict(int)
    for txn in transactions:
        if txn.parent_transaction_id is not None and txn.category_id is not None:
            covered[txn.parent_transaction_id] += abs(txn.amount_cents)
    pairs: list[tuple[object, int]] = []
    for txn in transactions:
        signed = _signed_amount(txn)
        if txn.id is not None and txn.id in covered:
            remainder = max(0, abs(txn.amount_cents) - covered[txn.id])
            signed = remainder if signed >= 0 else -remainder
        pairs.append((txn, signed))
    return pairs


def _orient(net_debit: int, budget_type) -> int:
    if budget_type == BudgetType.income:
        return max(0, -net_debit)
    return max(0, net_debit)


def net_by_month(transactions: Sequence, category_ids: Iterable[int]) -> dict[str, int]:
    """Debit-positive net amount per month for a category set.

    Only months with activity appear.
    """
    wanted = set(category_ids)
    net: dict[str, int] = defaultdict(int)
    for txn, signed in _effective_amounts(transactions):
        if txn.category_id not in wanted:
            continue
        day = parse_day(txn.date)
        if day is None:
            continue
        net[month_of(day)] += signed
    return dict(net)


def monthly_totals(
    transactions: Sequence, category_ids: Iterable[int], budget_type
) -> dict[str, int]:
    return {
        month: _orient(amount, budget_type)
        for month, amount in net_by_month(transactions, category_ids).items()
    }


def status_for(percentage: float, is_overspent: bool) -> str:
    if is_overspent or percentage >= STATUS_OVER_THRESHOLD:
        return "over"
    if percentage >= STATUS_WARNING_THRESHOLD:
        return "warning"
    if percentage >= STATUS_GOOD_THRESHOLD:
        return "good"
    return "excellent"


def trend_for(spent: int, median: int) -> tuple[float, str]:
    if median <= 0:
        return 0.0, "stable"
    percentage = round((spent - median) / median * 100, 1)
    if percentage > TREND_THRESHOLD:
        return percentage, "increasing"
    if percentage < -TREND_THRESHOLD:
        return percentage, "decreasing"
    return percentage, "stable"


def summarize(
    account_id: int,
    budgets: Iterable,
    month_year: str,
    transactions: Sequence,
    *,
    history_months: int = 12,
) -> list[BudgetSummary]:
    account_txns = [t for t in transactions if t.account_id == account_id]
    history = {add_months(month_year, -offset) for offset in range(1, history_months + 1)}
    summaries: list[BudgetSummary] = []
    for budget in budgets:
        if budget.account_id != account_id or budget.budget_type == BudgetType.project:
            continue
        if classify(budget, month_year) != BudgetState.active:
            continue

        totals = monthly_totals(account_txns, budget.category_ids, budget.budget_type)
        allocated = allocated_cents(budget, month_year)
        spent = totals.get(month_year, 0)
        percentage = round(spent / allocated * 100, 1) if allocated > 0 else 0.0
        is_overspent = budget.budget_type == BudgetType.expense and spent > allocated
        median = median_cents(v for m, v in totals.items() if m in history)
        trend_percentage, trend_direction = trend_for(spent, median)

        summaries.append(
            BudgetSummary(
                budget_id=budget.id,
                budget_name=budget.name,
                budget_type=budget.budget_type,
                month_year=month_year,
                allocated_amount_cents=allocated,
                spent_amount_cents=spent,
                remaining_amount_cents=allocated - spent,
                spent_percentage=percentage,
                is_overspent=is_overspent,
                status=status_for(percentage, is_overspent),
                category_count=len(budget.category_ids),
                historical_median_cents=median,
                trend_percentage=trend_percentage,
                trend_direction=trend_direction,
            )
        )
    return summaries


def uncategorized_stats(transactions: Sequence, month_year: str) -> UncategorizedStats:
    parents = {t.parent_transaction_id for t in transactions if t.parent_transaction_id}
    stats = UncategorizedStats(month_year=month_year)
    for txn in transactions:
        if txn.category_id is not None or txn.id in parents:
            continue
        day = parse_day(txn.date)
        if day is None or month_of(day) != month_year:
            continue
        stats.count += 1
        stats.total_amount_cents += abs(txn.amount_cents)
    return stats
