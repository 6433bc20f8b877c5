from datetime import date

import pytest

from models import MatchType, TransactionType
from patterns import (
    InvalidPattern,
    assignment_for,
    find_conflicts,
    is_valid,
    match_summary,
    matches,
    pattern_hash,
    validate_pattern,
)
from schemas import PatternRecord, TransactionRecord


def _txn(**overrides) -> TransactionRecord:
    data = {
        "id": 1,
        "account_id": 1,
        "date": date(2025, 3, 15),
        "description": "NETFLIX.COM Amsterdam",
        "transaction_type": TransactionType.debit,
        "amount_cents": 1299,
    }
    data.update(overrides)
    return TransactionRecord(**data)


def _pattern(**overrides) -> PatternRecord:
    data = {"id": 1, "account_id": 1, "category_id": 5}
    data.update(overrides)
    return PatternRecord(**data)


def test_like_is_case_insensitive_substring():
    assert matches(_txn(), _pattern(description="netflix"))
    assert not matches(_txn(), _pattern(description="spotify"))


def test_exact_compares_trimmed_text():
    pattern = _pattern(description="Albert Heijn", description_match_type=MatchType.exact)
    assert matches(_txn(description="  albert heijn "), pattern)
    assert not matches(_txn(description="Albert Heijn 1234"), pattern)


def test_notes_and_tag_criteria():
    pattern = _pattern(notes="rent", tag="Housing")
    assert matches(_txn(notes="Monthly RENT March", tag="housing"), pattern)
    assert not matches(_txn(notes="Monthly RENT March", tag="food"), pattern)
    assert not matches(_txn(notes=None, tag="housing"), pattern)


def test_amount_bounds_are_inclusive_on_magnitude():
    pattern = _pattern(min_amount_cents=1000, max_amount_cents=2000)
    assert matches(_txn(amount_cents=1000), pattern)
    assert matches(_txn(amount_cents=2000), pattern)
    assert matches(_txn(amount_cents=-1500), pattern)
    assert not matches(_txn(amount_cents=2001), pattern)
    assert not matches(_txn(amount_cents=999), pattern)


def test_open_ended_amount_bound():
    pattern = _pattern(min_amount_cents=1000)
    assert matches(_txn(amount_cents=10_000_000), pattern)
    assert not matches(_txn(amount_cents=999), pattern)


def test_date_window_is_inclusive():
    pattern = _pattern(start_date=date(2025, 3, 1), end_date=date(2025, 3, 15))
    assert matches(_txn(date=date(2025, 3, 1)), pattern)
    assert matches(_txn(date=date(2025, 3, 15)), pattern)
    assert not matches(_txn(date=date(2025, 3, 16)), pattern)
    assert not matches(_txn(date="garbage"), pattern)


def test_transaction_type_criterion():
    pattern = _pattern(description="netflix", transaction_type=TransactionType.credit)
    assert not matches(_txn(), pattern)
    assert matches(_txn(transaction_type=TransactionType.credit), pattern)


def test_pattern_without_criteria_never_matches():
    pattern = _pattern()
    assert not is_valid(pattern)
    assert not matches(_txn(), pattern)
    with pytest.raises(InvalidPattern):
        validate_pattern(pattern)


def test_inverted_ranges_fail_closed():
    inverted_amount = _pattern(min_amount_cents=2000, max_amount_cents=1000)
    inverted_dates = _pattern(start_date=date(2025, 4, 1), end_date=date(2025, 3, 1))
    assert not matches(_txn(amount_cents=1500), inverted_amount)
    assert not matches(_txn(), inverted_dates)
    with pytest.raises(ValueError):
        validate_pattern(inverted_amount)


def test_pattern_needs_a_target_when_required():
    pattern = _pattern(description="netflix", category_id=None)
    validate_pattern(pattern)
    with pytest.raises(InvalidPattern):
        validate_pattern(pattern, require_target=True)


def test_two_category_patterns_conflict():
    first = _pattern(id=1, description="netflix", category_id=5)
    second = _pattern(id=2, description="netflix.com", category_id=6)
    result = find_conflicts(_txn(), [first, second])
    assert result.matched_pattern_ids == [1, 2]
    assert result.conflict is True


def test_category_and_savings_targets_do_not_conflict():
    category = _pattern(id=1, description="netflix", category_id=5)
    savings = _pattern(id=2, description="netflix", category_id=None, savings_account_id=3)
    result = find_conflicts(_txn(), [category, savings])
    assert result.matched_pattern_ids == [1, 2]
    assert result.conflict is False


def test_disabled_patterns_are_ignored_by_conflict_check():
    first = _pattern(id=1, description="netflix", category_id=5)
    disabled = _pattern(id=2, description="netflix", category_id=6, enabled=False)
    result = find_conflicts(_txn(), [first, disabled])
    assert result.matched_pattern_ids == [1]
    assert result.conflict is False


def test_pattern_hash_ignores_case_and_whitespace():
    a = pattern_hash(1, " Netflix ", None, 5, None)
    b = pattern_hash(1, "netflix", "", 5, 0)
    assert a == b
    assert len(a) == 64
    assert a != pattern_hash(1, "netflix", None, 6, None)
    assert a != pattern_hash(2, "netflix", None, 5, None)


def test_non_strict_pattern_only_fills_empty_targets():
    pattern = _pattern(description="netflix", category_id=5)
    assert assignment_for(_txn(category_id=None), pattern) == {"category_id": 5}
    assert assignment_for(_txn(category_id=9), pattern) == {}


def test_strict_pattern_overwrites_existing_target():
    pattern = _pattern(description="netflix", category_id=5, strict=True)
    assert assignment_for(_txn(category_id=9), pattern) == {"category_id": 5}
    assert assignment_for(_txn(category_id=5), pattern) == {}
    assert assignment_for(_txn(description="spotify"), pattern) == {}


def test_match_summary_splits_by_current_assignment():
    pattern = _pattern(description="netflix", category_id=5)
    transactions = [
        _txn(id=1, category_id=None),
        _txn(id=2, category_id=5),
        _txn(id=3, category_id=8),
        _txn(id=4, description="spotify"),
    ]
    summary = match_summary(transactions, pattern)
    assert summary.total == 3
    assert summary.unassigned == 1
    assert summary.assigned_same == 1
    assert summary.assigned_other == 1
    assert summary.matched_ids == [1, 2, 3]
    assert summary.conflicting_ids == [3]


def test_like_and_exact_on_a_bank_description():
    txn = _txn(description="Albert Heijn Ahold BV")
    assert matches(txn, _pattern(description="ahold", description_match_type=MatchType.like))
    assert not matches(txn, _pattern(description="ahold", description_match_type=MatchType.exact))
    assert matches(
        _txn(description="AHOLD"),
        _pattern(description="ahold", description_match_type=MatchType.exact),
    )
