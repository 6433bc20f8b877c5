import hashlib
import logging
from typing import Iterable, Optional

from models import MatchType
from periods import parse_day
from schemas import MatchResult, PatternMatchSummary

logger = logging.getLogger(__name__)


class InvalidPattern(ValueError):
    pass


class DuplicatePattern(ValueError):
    pass


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


def criteria_count(pattern) -> int:
    count = 0
    for text in (pattern.description, pattern.notes, pattern.tag):
        if _clean(text):
            count += 1
    for value in (
        pattern.transaction_type,
        pattern.min_amount_cents,
        pattern.max_amount_cents,
        pattern.start_date,
        pattern.end_date,
    ):
        if value is not None:
            count += 1
    return count


def validate_pattern(pattern, *, require_target: bool = False) -> None:
    if criteria_count(pattern) == 0:
        raise InvalidPattern("Pattern needs at least one criterion")
    if (
        pattern.min_amount_cents is not None
        and pattern.max_amount_cents is not None
        and pattern.min_amount_cents > pattern.max_amount_cents
    ):
        raise InvalidPattern("Minimum amount must not exceed maximum amount")
    if (
        pattern.start_date is not None
        and pattern.end_date is not None
        and pattern.start_date > pattern.end_date
    ):
        raise InvalidPattern("Start date must not be after end date")
    if require_target and pattern.category_id is None and pattern.savings_account_id is None:
        raise InvalidPattern("Pattern needs a category or savings account")


def is_valid(pattern) -> bool:
    try:
        validate_pattern(pattern)
    except InvalidPattern:
        return False
    return True


def _text_matches(value: Optional[str], needle: Optional[str], match_type) -> bool:
    expected = _clean(needle).lower()
    if not expected:
        return True
    actual = (value or "").lower()
    if match_type == MatchType.exact:
        return actual.strip() == expected
    return expected in actual


def matches(transaction, pattern) -> bool:
    """Return True when every criterion the pattern sets holds for the transaction.

    Invalid patterns never match.
    """
    try:
        validate_pattern(pattern)
    except InvalidPattern as exc:
        logger.debug(f"pattern_invalid: pattern_id={getattr(pattern, 'id', None)} reason={exc}")
        return False

    if pattern.transaction_type and pattern.transaction_type != transaction.transaction_type:
        return False

    amount = abs(transaction.amount_cents)
    if pattern.min_amount_cents is not None and amount < pattern.min_amount_cents:
        return False
    if pattern.max_amount_cents is not None and amount > pattern.max_amount_cents:
        return False

    if pattern.start_date is not None or pattern.end_date is not None:
        day = parse_day(transaction.date)
        if day is None:
            return False
        if pattern.start_date is not None and day < pattern.start_date:
            return False
        if pattern.end_date is not None and day > pattern.end_date:
            return False

    if not _text_matches(
        transaction.description, pattern.description, pattern.description_match_type
    ):
        return False
    if not _text_matches(transaction.notes, pattern.notes, pattern.notes_match_type):
        return False

    tag = _clean(pattern.tag).lower()
    if tag and _clean(transaction.tag).lower() != tag:
        return False
    return True


def find_conflicts(transaction, candidate_patterns: Iterable) -> MatchResult:
    matched = [
        pattern
        for pattern in candidate_patterns
        if pattern.enabled and matches(transaction, pattern)
    ]
    category_hits = sum(1 for p in matched if p.category_id is not None)
    savings_hits = sum(1 for p in matched if p.savings_account_id is not None)
    conflict = category_hits > 1 or savings_hits > 1
    if conflict:
        logger.info(
            f"pattern_conflict: transaction_id={getattr(transaction, 'id', None)} "
            f"patterns={[p.id for p in matched]}"
        )
    return MatchResult(matched_pattern_ids=[p.id for p in matched], conflict=conflict)


def pattern_hash(
    account_id: int,
    description: Optional[str],
    notes: Optional[str],
    category_id: Optional[int],
    savings_account_id: Optional[int],
) -> str:
    parts = [
        str(account_id),
        _clean(description).lower(),
        _clean(notes).lower(),
        str(category_id or 0),
        str(savings_account_id or 0),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def hash_for(pattern) -> str:
    return pattern_hash(
        pattern.account_id,
        pattern.description,
        pattern.notes,
        pattern.category_id,
        pattern.savings_account_id,
    )


def assignment_for(transaction, pattern) -> dict[str, int]:
    """Field updates a pattern would apply to a transaction.

    Non-strict patterns only fill empty targets; strict ones overwrite.
    """
    if not matches(transaction, pattern):
        return {}
    updates: dict[str, int] = {}
    if pattern.category_id is not None and transaction.category_id != pattern.category_id:
        if pattern.strict or transaction.category_id is None:
            updates["category_id"] = pattern.category_id
    if (
        pattern.savings_account_id is not None
        and transaction.savings_account_id != pattern.savings_account_id
    ):
        if pattern.strict or transaction.savings_account_id is None:
            updates["savings_account_id"] = pattern.savings_account_id
    return updates


def match_summary(transactions: Iterable, pattern) -> PatternMatchSummary:
    summary = PatternMatchSummary()
    for txn in transactions:
        if not matches(txn, pattern):
            continue
        summary.total += 1
        summary.matched_ids.append(txn.id)
        current_targets = (txn.category_id, txn.savings_account_id)
        if current_targets == (None, None):
            summary.unassigned += 1
            continue
        differs = (
            pattern.category_id is not None
            and txn.category_id is not None
            and txn.category_id != pattern.category_id
        ) or (
            pattern.savings_account_id is not None
            and txn.savings_account_id is not None
            and txn.savings_account_id != pattern.savings_account_id
        )
        if differs:
            summary.assigned_other += 1
            summary.conflicting_ids.append(txn.id)
        else:
            summary.assigned_same += 1
    return summary
