import math
from decimal import Decimal
from typing import Iterable, Sequence, Union

from money import round_half_up

Numeric = Union[int, float]


def median(values: Iterable[Numeric]) -> float:
    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        return 0
    middle = count // 2
    if count % 2:
        return ordered[middle]
    return (ordered[middle - 1] + ordered[middle]) / 2


def median_cents(values: Iterable[int]) -> int:
    """Median of cent amounts, rounded half-up to whole cents."""
    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        return 0
    middle = count // 2
    if count % 2:
        return ordered[middle]
    return round_half_up(Decimal(ordered[middle - 1] + ordered[middle]) / 2)


def mean_cents(values: Sequence[int]) -> int:
    if not values:
        return 0
    return round_half_up(Decimal(sum(values)) / len(values))


def trimmed_mean(values: Iterable[Numeric], trim_percent: float) -> float:
    """Mean after dropping trim_percent/2 percent of the values from each tail.

    At least one value is always kept.
    """
    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        return 0
    per_tail = math.floor(count * trim_percent / 100 / 2)
    if count - 2 * per_tail < 1:
        per_tail = (count - 1) // 2
    kept = ordered[per_tail : count - per_tail] if per_tail else ordered
    return sum(kept) / len(kept)


def mean(values: Iterable[Numeric]) -> float:
    items = list(values)
    if not items:
        return 0
    return sum(items) / len(items)


def iqr_mean(values: Iterable[Numeric]) -> float:
    """Mean of the values inside 1.5 IQR of the quartiles.

    Fewer than four values are averaged as they are.
    """
    ordered = sorted(values)
    count = len(ordered)
    if count < 4:
        return mean(ordered)
    q1 = ordered[math.floor(count * 0.25)]
    q3 = ordered[math.floor(count * 0.75)]
    spread = q3 - q1
    low, high = q1 - 1.5 * spread, q3 + 1.5 * spread
    return mean(v for v in ordered if low <= v <= high)


def weighted_median(values_newest_first: Sequence[Numeric]) -> float:
    # linear weights: the newest value counts len(values) times, the oldest once
    count = len(values_newest_first)
    if count < 3:
        return median(values_newest_first)
    weighted: list[Numeric] = []
    for index, value in enumerate(values_newest_first):
        weighted.extend([value] * (count - index))
    return median(weighted)
