"""Money helpers. Amounts are stored and computed as integer cents."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[int, float, Decimal, str]

_CENT = Decimal("0.01")
_ONE = Decimal("1")


def round_half_up(value: Union[int, float, Decimal]) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        value = Decimal(repr(value))
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_cents(value: Number) -> int:
    if isinstance(value, int):
        return value * 100
    if isinstance(value, float):
        return from_float(value)
    if isinstance(value, str):
        return parse_amount(value, allow_negative=True)
    return round_half_up(value * 100)


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


def from_float(amount: float) -> int:
    return round_half_up(Decimal(repr(amount)) * 100)


def to_float(cents: int) -> float:
    return float(from_cents(cents))


def format_amount(cents: int) -> str:
    return f"{from_cents(cents):.2f}"


def parse_amount(value: str, *, allow_negative: bool = False) -> int:
    """Parse a user or bank amount string into cents.

    Accepts "12.99", "12,99", "1.250,75", "1,250.75" and currency symbols.
    """
    clean = value.strip().replace("€", "").replace("$", "").replace(" ", "")
    if "," in clean and "." in clean:
        # the right-most separator is the decimal one
        if clean.rfind(",") > clean.rfind("."):
            clean = clean.replace(".", "").replace(",", ".")
        else:
            clean = clean.replace(",", "")
    else:
        clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    cents = round_half_up(amount * 100)
    if cents < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return cents
