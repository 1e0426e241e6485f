import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

MONTH_PATTERN = re.compile(r"^\d{4}-\d{2}$")


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_end(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return add_months(d, 1) - date.resolution


def month_label(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def resolve_month(month: Optional[str]) -> Optional[Period]:
    """Return the calendar month named by ``YYYY-MM``.

    ``None`` means "no restriction": the argument was absent or does not look
    like a year-month. A well-formed string naming a month outside 01..12
    raises ``ValueError``.
    """
    if not month or not MONTH_PATTERN.match(month):
        return None
    year_str, month_str = month.split("-", 1)
    year, mon = int(year_str), int(month_str)
    if not 1 <= mon <= 12 or year < 1:
        raise ValueError(f"Invalid month: {month}")
    first = date(year, mon, 1)
    return Period(month, first, month_end(first))


def trailing_months(today: date, count: int = 12) -> Period:
    """The ``count`` calendar months ending with the month of ``today``."""
    end = month_end(today)
    start = add_months(month_start(today), -(count - 1))
    return Period(f"last_{count}_months", start, end)
