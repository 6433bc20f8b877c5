from typing import Iterable, Mapping, Optional, Sequence

from budgets import net_by_month
from models import ForecastItemType
from periods import add_months, parse_day
from schemas import ForecastLine, ForecastSummary
from stats import median_cents


def _category_ids(item, budgets_by_id: Mapping[int, object]) -> list[int]:
    if item.budget_id is not None:
        budget = budgets_by_id.get(item.budget_id)
        return list(budget.category_ids) if budget is not None else []
    return [item.category_id] if item.category_id is not None else []


def _orient(item, net_debit: int) -> int:
    # income is reported as a positive number, expenses keep their sign so
    # money flowing back out of savings shows as negative
    if item.item_type == ForecastItemType.income:
        return abs(net_debit)
    return net_debit


def actual_amount_cents(
    item, month: str, transactions: Sequence, budgets_by_id: Mapping[int, object]
) -> int:
    totals = net_by_month(transactions, _category_ids(item, budgets_by_id))
    return _orient(item, totals.get(month, 0))


def item_median_cents(
    item,
    month: str,
    transactions: Sequence,
    budgets_by_id: Mapping[int, object],
    history_months: int = 12,
) -> int:
    totals = net_by_month(transactions, _category_ids(item, budgets_by_id))
    history = {add_months(month, -offset) for offset in range(1, history_months + 1)}
    return median_cents(_orient(item, v) for m, v in totals.items() if m in history)


def latest_balance_cents(transactions: Iterable) -> int:
    latest = None
    for txn in transactions:
        if txn.balance_after_cents is None:
            continue
        day = parse_day(txn.date)
        if day is None:
            continue
        key = (day, txn.id or 0)
        if latest is None or key > latest[0]:
            latest = (key, txn.balance_after_cents)
    return latest[1] if latest else 0


def _line_name(
    item,
    budgets_by_id: Mapping[int, object],
    category_names: Optional[Mapping[int, str]],
) -> str:
    if item.custom_name:
        return item.custom_name
    if item.budget_id is not None and item.budget_id in budgets_by_id:
        return budgets_by_id[item.budget_id].name
    if category_names and item.category_id in category_names:
        return category_names[item.category_id]
    return f"Category {item.category_id}"


def build_forecast(
    items: Iterable,
    month: str,
    transactions: Sequence,
    budgets: Iterable,
    current_balance_cents: int,
    *,
    category_names: Optional[Mapping[int, str]] = None,
) -> ForecastSummary:
    budgets_by_id = {budget.id: budget for budget in budgets}
    summary = ForecastSummary(month_year=month, current_balance_cents=current_balance_cents)

    for item in sorted(items, key=lambda i: (i.position, i.id or 0)):
        actual = actual_amount_cents(item, month, transactions, budgets_by_id)
        line = ForecastLine(
            item_id=item.id,
            name=_line_name(item, budgets_by_id, category_names),
            item_type=item.item_type,
            expected_amount_cents=item.expected_amount_cents,
            actual_amount_cents=actual,
            difference_cents=actual - item.expected_amount_cents,
        )
        if item.item_type == ForecastItemType.income:
            summary.income.append(line)
            summary.expected_income_cents += line.expected_amount_cents
            summary.actual_income_cents += actual
        else:
            summary.expenses.append(line)
            summary.expected_expenses_cents += line.expected_amount_cents
            summary.actual_expenses_cents += actual

    summary.expected_result_cents = (
        summary.expected_income_cents - summary.expected_expenses_cents
    )
    summary.actual_result_cents = summary.actual_income_cents - summary.actual_expenses_cents
    summary.projected_balance_cents = (
        current_balance_cents
        + (summary.expected_income_cents - summary.actual_income_cents)
        - (summary.expected_expenses_cents - summary.actual_expenses_cents)
    )
    return summary
