from datetime import date

import pytest

from insights import (
    budget_insight,
    category_statistics,
    compute_insights,
    compute_normal,
    delta_percentage,
    insight_level,
    monthly_statistics,
)
from models import BudgetType, TransactionType
from schemas import BudgetRecord, TransactionRecord


def _txn(txn_id, day, amount, txn_type=TransactionType.debit, category_id=10, **extra):
    return TransactionRecord(
        id=txn_id,
        account_id=1,
        date=day,
        description="AH",
        transaction_type=txn_type,
        amount_cents=amount,
        category_id=category_id,
        **extra,
    )


def _budget(budget_id=1, category_ids=(10,), **extra) -> BudgetRecord:
    return BudgetRecord(
        id=budget_id,
        account_id=1,
        name=extra.pop("name", "Groceries"),
        category_ids=list(category_ids),
        **extra,
    )


def _spending() -> list[TransactionRecord]:
    return [
        _txn(1, date(2025, 1, 20), 5000),
        _txn(2, date(2025, 2, 10), 10000),
        _txn(3, date(2025, 3, 10), 20000),
        _txn(4, date(2025, 3, 12), 50000, TransactionType.credit),
        _txn(5, date(2025, 4, 10), 40000),
        _txn(6, date(2025, 4, 10), 9999, parent_transaction_id=5),
        _txn(7, date(2025, 5, 10), 100000),
        _txn(8, date(2025, 6, 10), 25000),
        _txn(9, date(2025, 7, 2), 15000),
    ]


def test_monthly_statistics_skip_partial_months():
    stats = monthly_statistics(_spending(), today_month="2025-07")

    assert [row.month for row in stats.monthly_totals] == [
        "2025-06", "2025-05", "2025-04", "2025-03", "2025-02"
    ]
    assert stats.month_count == 5
    assert stats.median_cents == 25000
    assert stats.trimmed_mean_cents == 28333
    assert stats.iqr_mean_cents == 23750
    assert stats.weighted_median_cents == 25000
    assert stats.average_cents == 39000


def test_monthly_statistics_limit_and_empty_history():
    recent = monthly_statistics(_spending(), today_month="2025-07", months=2)
    assert [row.total_cents for row in recent.monthly_totals] == [25000, 100000]
    assert recent.median_cents == 62500

    empty = monthly_statistics([], today_month="2025-07")
    assert empty.month_count == 0
    assert empty.median_cents == 0

    with pytest.raises(ValueError):
        monthly_statistics(_spending(), today_month="2025-07", months=0)


def test_normal_counts_quiet_months_as_zero():
    transactions = [_txn(1, date(2025, 3, 4), 30000), _txn(2, date(2025, 5, 4), 10000)]

    assert compute_normal(_budget(), transactions, "2025-06", months=3) == 10000
    assert compute_normal(_budget(), transactions, "2025-06", months=2) == 5000
    assert compute_normal(_budget(category_ids=()), transactions, "2025-06") == 0


def test_delta_and_level():
    assert delta_percentage(15000, 10000) == 50.0
    assert delta_percentage(9000, 10000) == -10.0
    assert delta_percentage(500, 0) == 0.0
    assert insight_level(5.0) == "stable"
    assert insight_level(-12.5) == "slight"
    assert insight_level(30.0) == "anomaly"


def test_budget_insight_history():
    transactions = [
        _txn(1, date(2025, 3, 4), 30000),
        _txn(2, date(2025, 5, 4), 10000),
        _txn(3, date(2025, 6, 4), 12000),
    ]

    insight = budget_insight(_budget(), transactions, "2025-06")

    assert insight.current_cents == 12000
    assert insight.normal_cents == 0
    assert insight.average_cents == 3333
    assert insight.previous_month_cents == 10000
    assert insight.last_year_cents is None
    assert insight.level == "stable"
    assert insight.sparkline_cents == [0, 0, 0, 30000, 0, 10000]


def test_income_budget_insight_counts_credits():
    salary = [
        _txn(i, date(2025, month, 25), 300000, TransactionType.credit)
        for i, month in enumerate(range(1, 7), start=1)
    ]
    income = _budget(budget_type=BudgetType.income)

    insight = budget_insight(income, salary, "2025-06")

    assert insight.current_cents == 300000
    assert insight.previous_month_cents == 300000
    assert insight.sparkline_cents == [0, 300000, 300000, 300000, 300000, 300000]


def test_insights_skip_inactive_and_project_budgets():
    budgets = [
        _budget(1),
        _budget(2, is_active=False),
        _budget(3, budget_type=BudgetType.project),
        _budget(4, name="Eating out"),
        _budget(5, name="Drinks"),
    ]
    transactions = [_txn(1, date(2025, 6, 4), 1000)]

    assert [i.budget_id for i in compute_insights(budgets, transactions, "2025-06")] == [1, 4, 5]
    assert [i.budget_id for i in compute_insights(budgets, transactions, "2025-06", limit=1)] == [1]
    assert len(compute_insights(budgets, transactions, "2025-06", limit=None)) == 3


def _two_categories() -> list[TransactionRecord]:
    return [
        _txn(1, date(2025, 1, 5), 10000),
        _txn(2, date(2025, 2, 5), 20000),
        _txn(3, date(2025, 2, 9), 5000, TransactionType.credit),
        _txn(4, date(2025, 3, 5), 30000),
        _txn(5, date(2025, 3, 6), 50000, category_id=20),
        _txn(6, date(2025, 4, 2), 7000),
    ]


def test_category_statistics_over_all_history_with_breakdown():
    stats = category_statistics(
        _two_categories(),
        [10, 20],
        today_month="2025-04",
        period="all",
        include_breakdown=True,
        category_names={10: "Groceries"},
    )

    assert [row.month for row in stats.history] == ["2025-01", "2025-02", "2025-03"]
    assert [row.total_cents for row in stats.history] == [10000, 15000, 80000]
    assert stats.average_cents == 35000
    assert stats.median_cents == 15000
    assert [(b.category_id, b.category_name, b.total_cents) for b in stats.breakdown] == [
        (10, "Groceries", 55000),
        (20, "Unknown", 50000),
    ]


def test_category_statistics_fixed_window_includes_quiet_months():
    stats = category_statistics(
        _two_categories(), [10, 20], today_month="2025-04", period="6m", include_current_month=True
    )

    assert stats.month_count == 6
    assert stats.history[0].month == "2024-11"
    assert [row.total_cents for row in stats.history] == [0, 0, 10000, 15000, 80000, 7000]
    assert stats.average_cents == 18667
    assert stats.median_cents == 8500
    assert stats.breakdown is None


def test_category_statistics_edge_cases():
    empty = category_statistics(_two_categories(), [], today_month="2025-04")
    assert empty.month_count == 0
    assert empty.history == []

    single = category_statistics(
        _two_categories(), [10], today_month="2025-04", include_breakdown=True
    )
    assert single.breakdown is None
    assert single.month_count == 12

    with pytest.raises(ValueError):
        category_statistics(_two_categories(), [10], today_month="2025-04", period="5y")
