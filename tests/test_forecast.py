from datetime import date

from forecast import actual_amount_cents, build_forecast, item_median_cents, latest_balance_cents
from models import BudgetType, ForecastItemType, TransactionType
from schemas import BudgetRecord, BudgetVersionRecord, ForecastItemRecord, TransactionRecord


def _txn(txn_id, day, amount, txn_type, category_id, balance=None):
    return TransactionRecord(
        id=txn_id,
        account_id=1,
        date=day,
        description="x",
        transaction_type=txn_type,
        amount_cents=amount,
        category_id=category_id,
        balance_after_cents=balance,
    )


BUDGET = BudgetRecord(
    id=1,
    account_id=1,
    name="Groceries",
    budget_type=BudgetType.expense,
    category_ids=[10],
    versions=[BudgetVersionRecord(id=1, monthly_amount_cents=100000, effective_from_month="2025-01")],
)
SALARY = ForecastItemRecord(
    id=1, category_id=20, item_type=ForecastItemType.income, expected_amount_cents=300000, position=0
)
GROCERIES = ForecastItemRecord(
    id=2, budget_id=1, item_type=ForecastItemType.expense, expected_amount_cents=100000, position=1
)


def test_actual_amounts_follow_item_direction():
    transactions = [
        _txn(1, date(2025, 3, 25), 250000, TransactionType.credit, 20),
        _txn(2, date(2025, 3, 3), 40000, TransactionType.debit, 10),
        _txn(3, date(2025, 3, 4), 5000, TransactionType.credit, 10),
    ]
    budgets = {1: BUDGET}
    assert actual_amount_cents(SALARY, "2025-03", transactions, budgets) == 250000
    assert actual_amount_cents(GROCERIES, "2025-03", transactions, budgets) == 35000
    assert actual_amount_cents(GROCERIES, "2025-04", transactions, budgets) == 0


def test_forecast_projects_remaining_balance():
    transactions = [
        _txn(1, date(2025, 3, 25), 250000, TransactionType.credit, 20, balance=520000),
        _txn(2, date(2025, 3, 3), 40000, TransactionType.debit, 10, balance=500000),
    ]
    summary = build_forecast(
        [GROCERIES, SALARY],
        "2025-03",
        transactions,
        [BUDGET],
        latest_balance_cents(transactions),
        category_names={20: "Salary"},
    )

    assert [line.name for line in summary.income] == ["Salary"]
    assert [line.name for line in summary.expenses] == ["Groceries"]
    assert summary.current_balance_cents == 520000
    assert summary.expected_income_cents == 300000
    assert summary.actual_income_cents == 250000
    assert summary.expected_expenses_cents == 100000
    assert summary.actual_expenses_cents == 40000
    assert summary.expected_result_cents == 200000
    assert summary.actual_result_cents == 210000
    assert summary.projected_balance_cents == 520000 + 50000 - 60000
    assert summary.expenses[0].difference_cents == -60000


def test_item_median_uses_previous_months():
    transactions = [
        _txn(1, date(2025, 1, 3), 30000, TransactionType.debit, 10),
        _txn(2, date(2025, 2, 3), 50000, TransactionType.debit, 10),
        _txn(3, date(2025, 3, 3), 90000, TransactionType.debit, 10),
    ]
    assert item_median_cents(GROCERIES, "2025-03", transactions, {1: BUDGET}) == 40000


def test_latest_balance_without_balances_is_zero():
    assert latest_balance_cents([]) == 0
    assert latest_balance_cents([_txn(1, "bad", 1, TransactionType.debit, 10, balance=5)]) == 0
