"""Spending statistics and per-budget insights over monthly totals.

Every figure is built from calendar-month totals in cents. Months without
activity count as zero inside a fixed window, so a quiet month pulls the
normal down instead of disappearing.
"""

from collections import defaultdict
from typing import Iterable, Mapping, Optional, Sequence

from budgets import monthly_totals, net_by_month
from models import BudgetType, TransactionType
from money import round_half_up
from periods import (
    add_months,
    month_of,
    months_before,
    months_between,
    parse_day,
    previous_month,
)
from schemas import (
    BudgetInsight,
    CategoryBreakdown,
    CategoryStatistics,
    MonthlyStatistics,
    MonthTotal,
)
from stats import iqr_mean, mean, mean_cents, median_cents, trimmed_mean, weighted_median

# 20% off each end
MONTHLY_TRIM_PERCENT = 40
NORMAL_MONTHS = 12
SPARKLINE_MONTHS = 6
STABLE_DELTA = 10
SLIGHT_DELTA = 30
CATEGORY_PERIODS: dict[str, Optional[int]] = {
    "6m": 6,
    "1y": 12,
    "2y": 24,
    "3y": 36,
    "all": None,
}


def monthly_debit_totals(
    transactions: Iterable, *, today_month: str, months: Optional[int] = None
) -> list[MonthTotal]:
    """Debit spending per complete month, newest first.

    The first month with any activity and the running month are partial and
    left out. ``months`` keeps only the most recent ones.
    """
    if months is not None and months < 1:
        raise ValueError("Months must be at least 1")
    totals: dict[str, int] = defaultdict(int)
    seen: set[str] = set()
    for txn in transactions:
        day = parse_day(txn.date)
        if day is None:
            continue
        month = month_of(day)
        seen.add(month)
        if txn.parent_transaction_id is not None:
            continue
        if txn.transaction_type == TransactionType.debit:
            totals[month] += abs(txn.amount_cents)
    if not seen:
        return []
    first = min(seen)
    complete = sorted((m for m in totals if first < m < today_month), reverse=True)
    if months is not None:
        complete = complete[:months]
    return [MonthTotal(month=m, total_cents=totals[m]) for m in complete]


def monthly_statistics(
    transactions: Iterable, *, today_month: str, months: Optional[int] = None
) -> MonthlyStatistics:
    history = monthly_debit_totals(transactions, today_month=today_month, months=months)
    values = [row.total_cents for row in history]
    if not values:
        return MonthlyStatistics()
    return MonthlyStatistics(
        median_cents=median_cents(values),
        trimmed_mean_cents=round_half_up(trimmed_mean(values, MONTHLY_TRIM_PERCENT)),
        iqr_mean_cents=round_half_up(iqr_mean(values)),
        weighted_median_cents=round_half_up(weighted_median(values)),
        average_cents=round_half_up(mean(values)),
        month_count=len(values),
        monthly_totals=history,
    )


def _window(totals: Mapping[str, int], months: Sequence[str]) -> list[int]:
    return [totals.get(month, 0) for month in months]


def _budget_totals(budget, transactions: Sequence) -> dict[str, int]:
    return monthly_totals(transactions, budget.category_ids, budget.budget_type)


def compute_normal(
    budget, transactions: Sequence, month: str, months: int = NORMAL_MONTHS
) -> int:
    """Median of the budget's totals over the ``months`` before ``month``."""
    if not budget.category_ids:
        return 0
    totals = _budget_totals(budget, transactions)
    return median_cents(_window(totals, months_before(month, months)))


def delta_percentage(current: int, normal: int) -> float:
    if normal == 0:
        return 0.0
    return round((current - normal) / normal * 100, 1)


def insight_level(delta: float) -> str:
    if abs(delta) < STABLE_DELTA:
        return "stable"
    if abs(delta) < SLIGHT_DELTA:
        return "slight"
    return "anomaly"


def budget_insight(budget, transactions: Sequence, month: str) -> BudgetInsight:
    totals = _budget_totals(budget, transactions)
    history = _window(totals, months_before(month, NORMAL_MONTHS))
    current = totals.get(month, 0)
    normal = median_cents(history) if budget.category_ids else 0
    delta = delta_percentage(current, normal)
    return BudgetInsight(
        budget_id=budget.id,
        budget_name=budget.name,
        month_year=month,
        current_cents=current,
        normal_cents=normal,
        average_cents=mean_cents(history) if budget.category_ids else 0,
        previous_month_cents=totals.get(previous_month(month)) or None,
        last_year_cents=totals.get(add_months(month, -12)) or None,
        delta_percentage=delta,
        level=insight_level(delta),
        sparkline_cents=_window(totals, months_before(month, SPARKLINE_MONTHS)),
    )


def compute_insights(
    budgets: Iterable, transactions: Sequence, month: str, *, limit: Optional[int] = 3
) -> list[BudgetInsight]:
    insights = [
        budget_insight(budget, transactions, month)
        for budget in budgets
        if budget.is_active and budget.budget_type != BudgetType.project
    ]
    return insights[:limit] if limit else insights


def _statistics_months(
    net: Mapping[str, int], period: str, today_month: str, include_current_month: bool
) -> list[str]:
    last = today_month if include_current_month else previous_month(today_month)
    count = CATEGORY_PERIODS[period]
    if count is not None:
        return months_between(add_months(last, 1 - count), last)
    earlier = [month for month in net if month <= last]
    return months_between(min(earlier), last) if earlier else []


def category_statistics(
    transactions: Sequence,
    category_ids: Sequence[int],
    *,
    today_month: str,
    period: str = "1y",
    include_current_month: bool = False,
    include_breakdown: bool = False,
    category_names: Optional[Mapping[int, str]] = None,
) -> CategoryStatistics:
    """Average and median monthly spending of a set of categories.

    Totals are debits minus credits, so refunds lower a month.
    """
    if period not in CATEGORY_PERIODS:
        raise ValueError(f"Unknown period: {period}")
    result = CategoryStatistics(period=period, include_current_month=include_current_month)
    if not category_ids:
        return result

    net = net_by_month(transactions, category_ids)
    months = _statistics_months(net, period, today_month, include_current_month)
    values = _window(net, months)
    result.average_cents = mean_cents(values)
    result.median_cents = median_cents(values)
    result.month_count = len(values)
    result.history = [MonthTotal(month=m, total_cents=v) for m, v in zip(months, values)]

    if include_breakdown and len(category_ids) > 1:
        names = category_names or {}
        breakdown = []
        for category_id in dict.fromkeys(category_ids):
            per_month = _window(net_by_month(transactions, [category_id]), months)
            breakdown.append(
                CategoryBreakdown(
                    category_id=category_id,
                    category_name=names.get(category_id, "Unknown"),
                    average_cents=mean_cents(per_month),
                    median_cents=median_cents(per_month),
                    total_cents=sum(per_month),
                    monthly_totals=[
                        MonthTotal(month=m, total_cents=v) for m, v in zip(months, per_month)
                    ],
                )
            )
        breakdown.sort(key=lambda row: abs(row.total_cents), reverse=True)
        result.breakdown = breakdown
    return result
