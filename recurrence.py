import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from merchants import canonical_keys, display_name, is_same_merchant, merchant_key
from models import RecurrenceFrequency, TransactionType
from money import round_half_up
from periods import local_today, parse_day, subtract_months
from schemas import DetectionResult, RecurringTransactionOut
from stats import mean_cents

logger = logging.getLogger(__name__)

MIN_OCCURRENCES = 3
# a pattern is stale once this many expected intervals have passed silently
MAX_MISSED_INTERVALS = 2
OCCURRENCE_SATURATION = 6


@dataclass(frozen=True)
class FrequencyPolicy:
    frequency: RecurrenceFrequency
    min_days: int
    max_days: int
    min_occurrences: int
    average_days: int

    def accepts(self, gap_days: int) -> bool:
        return self.min_days <= gap_days <= self.max_days


FREQUENCY_POLICIES: tuple[FrequencyPolicy, ...] = (
    FrequencyPolicy(RecurrenceFrequency.weekly, 6, 8, 6, 7),
    FrequencyPolicy(RecurrenceFrequency.biweekly, 13, 15, 4, 14),
    FrequencyPolicy(RecurrenceFrequency.monthly, 28, 31, 3, 30),
    FrequencyPolicy(RecurrenceFrequency.quarterly, 85, 95, 2, 90),
    FrequencyPolicy(RecurrenceFrequency.yearly, 360, 370, 2, 365),
)
POLICY_BY_FREQUENCY = {policy.frequency: policy for policy in FREQUENCY_POLICIES}

# monthly equivalents, same factors the statistics page has always used
_MONTHLY_FACTORS = {
    RecurrenceFrequency.weekly: Decimal("4.35"),
    RecurrenceFrequency.biweekly: Decimal("2.175"),
    RecurrenceFrequency.monthly: Decimal("1"),
    RecurrenceFrequency.quarterly: Decimal("1") / 3,
    RecurrenceFrequency.yearly: Decimal("1") / 12,
}


@dataclass
class _Occurrence:
    day: date
    amount_cents: int
    description: str
    category_id: Optional[int]


@dataclass
class UpsertPlan:
    create: list[RecurringTransactionOut] = field(default_factory=list)
    update: list[tuple[int, RecurringTransactionOut]] = field(default_factory=list)
    delete_ids: list[int] = field(default_factory=list)


STATISTIC_FIELDS = (
    "predicted_amount_cents",
    "amount_variance",
    "frequency",
    "confidence_score",
    "interval_consistency",
    "occurrence_count",
    "last_occurrence",
    "next_expected",
    "is_active",
)


def confidence_score(consistency: float, occurrences: int) -> float:
    """Blend interval consistency with how much history backs it.

    Rises with both inputs; six perfectly regular occurrences score 1.0.
    """
    saturation = min(1.0, max(0, occurrences - 2) / (OCCURRENCE_SATURATION - 2))
    score = consistency * (0.5 + 0.5 * saturation)
    return round(min(1.0, max(0.0, score)), 2)


def amount_variance(amounts: Sequence[int]) -> float:
    if not amounts:
        return 0.0
    mean = sum(amounts) / len(amounts)
    spread = max(amounts) - min(amounts)
    if mean == 0 or spread == 0:
        return 0.0
    return round(spread / mean * 100, 2)


def _select_policy(
    gaps: Sequence[int], occurrences: int
) -> tuple[Optional[FrequencyPolicy], int]:
    best: Optional[FrequencyPolicy] = None
    best_hits = 0
    for policy in FREQUENCY_POLICIES:
        if occurrences < policy.min_occurrences:
            continue
        hits = sum(1 for gap in gaps if policy.accepts(gap))
        if hits > best_hits:
            best, best_hits = policy, hits
    return best, best_hits


def _analyze(
    account_id: int,
    key: str,
    txn_type: TransactionType,
    occurrences: list[_Occurrence],
    today: date,
) -> Optional[RecurringTransactionOut]:
    occurrences = sorted(occurrences, key=lambda o: o.day)
    gaps = [(b.day - a.day).days for a, b in zip(occurrences, occurrences[1:])]
    policy, hits = _select_policy(gaps, len(occurrences))
    if policy is None:
        return None

    consistency = hits / len(gaps)
    amounts = [o.amount_cents for o in occurrences]
    last = occurrences[-1]
    silent_days = (today - last.day).days
    return RecurringTransactionOut(
        account_id=account_id,
        merchant_pattern=key,
        display_name=display_name(last.description),
        transaction_type=txn_type,
        predicted_amount_cents=mean_cents(amounts),
        amount_variance=amount_variance(amounts),
        frequency=policy.frequency,
        confidence_score=confidence_score(consistency, len(occurrences)),
        interval_consistency=round(consistency, 2),
        occurrence_count=len(occurrences),
        last_occurrence=last.day,
        next_expected=last.day + timedelta(days=policy.average_days),
        is_active=silent_days <= policy.average_days * MAX_MISSED_INTERVALS,
        category_id=last.category_id,
    )


def _fold_similar(
    groups: dict[tuple[str, TransactionType], list[_Occurrence]],
) -> dict[tuple[str, TransactionType], list[_Occurrence]]:
    folded: dict[tuple[str, TransactionType], list[_Occurrence]] = defaultdict(list)
    for txn_type in TransactionType:
        keys = [key for key, kind in groups if kind == txn_type]
        mapping = canonical_keys(keys)
        for key in keys:
            folded[(mapping[key], txn_type)].extend(groups[(key, txn_type)])
    return folded


def detect(
    account_id: int,
    transactions: Iterable,
    *,
    today: Optional[date] = None,
    lookback_months: Optional[int] = None,
    min_confidence: float = 0.0,
) -> DetectionResult:
    """Find merchants an account pays (or is paid by) on a regular schedule.

    The result only depends on the inputs, so running it twice over the same
    transactions yields the same rows. Transactions with unreadable dates are
    skipped and listed in ``skipped_transaction_ids``.
    """
    today = today or local_today()
    cutoff = subtract_months(today, lookback_months) if lookback_months else None

    skipped: list[Optional[int]] = []
    groups: dict[tuple[str, TransactionType], list[_Occurrence]] = defaultdict(list)
    for txn in transactions:
        if txn.account_id != account_id or txn.parent_transaction_id is not None:
            continue
        day = parse_day(txn.date)
        if day is None:
            skipped.append(txn.id)
            continue
        if cutoff is not None and day < cutoff:
            continue
        key = merchant_key(txn)
        if not key:
            continue
        groups[(key, TransactionType(txn.transaction_type))].append(
            _Occurrence(
                day=day,
                amount_cents=abs(txn.amount_cents),
                description=txn.description or "",
                category_id=txn.category_id,
            )
        )

    if skipped:
        logger.warning(
            f"recurring_detect: account_id={account_id} malformed_dates={len(skipped)}"
        )

    recurring: list[RecurringTransactionOut] = []
    insufficient = 0
    for (key, txn_type), occurrences in sorted(_fold_similar(groups).items()):
        if len(occurrences) < MIN_OCCURRENCES:
            insufficient += 1
            continue
        row = _analyze(account_id, key, txn_type, occurrences, today)
        if row is None or row.confidence_score < min_confidence:
            continue
        recurring.append(row)

    logger.info(
        f"recurring_detect: account_id={account_id} groups={len(groups)} "
        f"detected={len(recurring)} insufficient={insufficient} skipped={len(skipped)}"
    )
    return DetectionResult(
        recurring=recurring,
        skipped_transaction_ids=skipped,
        insufficient_groups=insufficient,
    )


def plan_upsert(
    existing: Iterable, detected: Iterable[RecurringTransactionOut], *, force: bool = False
) -> UpsertPlan:
    """Work out how a fresh detection run replaces the stored rows.

    Rows with the same merchant pattern and type are updated in place, so a
    merchant that went quiet becomes active again once it resumes. Rows the
    user deactivated are left alone. ``force`` drops everything and recreates
    it.
    """
    plan = UpsertPlan()
    if force:
        plan.delete_ids = [row.id for row in existing]
        plan.create = list(detected)
        return plan

    by_key = {
        (row.merchant_pattern, TransactionType(row.transaction_type)): row
        for row in existing
    }
    for row in detected:
        current = by_key.get((row.merchant_pattern, row.transaction_type))
        if current is None:
            plan.create.append(row)
        elif not current.user_deactivated:
            plan.update.append((current.id, row))
    return plan


def upcoming(recurring: Iterable, *, today: date, days: int = 30) -> list:
    horizon = today + timedelta(days=days)
    rows = [
        row
        for row in recurring
        if row.is_active and today <= row.next_expected <= horizon
    ]
    return sorted(rows, key=lambda row: (row.next_expected, row.merchant_pattern))


def overdue(recurring: Iterable, *, today: date) -> list:
    rows = [row for row in recurring if row.is_active and row.next_expected < today]
    return sorted(rows, key=lambda row: (row.next_expected, row.merchant_pattern))


def project_occurrences(
    recurring: Iterable, start: date, end: date
) -> list[tuple[date, object]]:
    projected: list[tuple[date, object]] = []
    for row in recurring:
        if not row.is_active:
            continue
        step = timedelta(days=POLICY_BY_FREQUENCY[row.frequency].average_days)
        day = row.next_expected
        while day < start:
            day += step
        while day <= end:
            projected.append((day, row))
            day += step
    projected.sort(key=lambda item: (item[0], item[1].merchant_pattern))
    return projected


def monthly_equivalent_cents(row) -> int:
    factor = _MONTHLY_FACTORS[RecurrenceFrequency(row.frequency)]
    return round_half_up(Decimal(row.predicted_amount_cents) * factor)


def summarize(recurring: Iterable) -> dict[str, object]:
    rows = list(recurring)
    active = [row for row in rows if row.is_active]
    debit = sum(
        monthly_equivalent_cents(row)
        for row in active
        if row.transaction_type == TransactionType.debit
    )
    credit = sum(
        monthly_equivalent_cents(row)
        for row in active
        if row.transaction_type == TransactionType.credit
    )
    return {
        "total": len(rows),
        "active": len(active),
        "monthly_debit_cents": debit,
        "monthly_credit_cents": credit,
        "net_monthly_cents": credit - debit,
    }


def group_by_frequency(recurring: Iterable) -> dict[RecurrenceFrequency, list]:
    grouped: dict[RecurrenceFrequency, list] = {freq: [] for freq in RecurrenceFrequency}
    for row in recurring:
        grouped[RecurrenceFrequency(row.frequency)].append(row)
    return grouped


def linked_transactions(row, transactions: Iterable) -> list:
    """Transactions of the account that belong to a recurring row, newest first."""
    linked = [
        txn
        for txn in transactions
        if txn.account_id == row.account_id
        and txn.parent_transaction_id is None
        and txn.transaction_type == row.transaction_type
        and is_same_merchant(merchant_key(txn), row.merchant_pattern)
        and parse_day(txn.date) is not None
    ]
    return sorted(linked, key=lambda txn: parse_day(txn.date), reverse=True)
