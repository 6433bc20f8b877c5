import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings

MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def is_month(value: Optional[str]) -> bool:
    return bool(value) and MONTH_RE.match(value) is not None


def month_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def current_month(*, today: Optional[date] = None) -> str:
    return month_of(today or local_today())


def add_months(month: str, count: int) -> str:
    year, mon = int(month[:4]), int(month[5:7])
    total = year * 12 + (mon - 1) + count
    return f"{total // 12:04d}-{total % 12 + 1:02d}"


def previous_month(month: str) -> str:
    return add_months(month, -1)


def months_between(first: str, last: str) -> list[str]:
    """Inclusive list of YYYY-MM months, oldest first."""
    months: list[str] = []
    month = first
    while month <= last:
        months.append(month)
        month = add_months(month, 1)
    return months


def months_before(month: str, count: int) -> list[str]:
    if count <= 0:
        return []
    return months_between(add_months(month, -count), previous_month(month))


def month_period(month: str) -> Period:
    year, mon = int(month[:4]), int(month[5:7])
    first = date(year, mon, 1)
    if mon == 12:
        next_first = date(year + 1, 1, 1)
    else:
        next_first = date(year, mon + 1, 1)
    return Period(month, first, next_first - date.resolution)


def subtract_months(day: date, count: int) -> date:
    """Shift a date back by whole months, clamping to the month's last day."""
    shifted = add_months(month_of(day), -count)
    period = month_period(shifted)
    return period.start.replace(day=min(day.day, period.end.day))


def parse_day(value) -> Optional[date]:
    """Coerce a stored transaction date; None when it cannot be read."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    text = value.strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d-%m-%Y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        return None
