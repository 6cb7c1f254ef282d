"""Calendar-date helpers.

Catalog dates are plain ``YYYY-MM-DD`` strings (sometimes with a time part).
They are always read as a calendar day in the viewer's local timezone, never as
midnight UTC, so a show airing "today" is released today everywhere.
"""

import calendar
from datetime import date, datetime
from typing import Optional


def today() -> date:
    """Today's local calendar date."""
    return date.today()


def parse_date_local(value: Optional[str]) -> Optional[date]:
    """Parse a catalog date string into a local calendar date.

    Returns None for empty or unparseable input.
    """
    if not value:
        return None

    parts = str(value).split("T")[0].split("-")
    if len(parts) == 3:
        try:
            return date(int(parts[0]), int(parts[1]), int(parts[2]))
        except ValueError:
            pass

    # Generic fallback for anything that isn't a literal year-month-day
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return parsed.date()


def is_released(value: Optional[str], on: Optional[date] = None) -> bool:
    """True if the date is today or earlier."""
    parsed = parse_date_local(value)
    if parsed is None:
        return False
    return parsed <= (on or today())


def is_future(value: Optional[str], on: Optional[date] = None) -> bool:
    """True if the date is strictly after today."""
    parsed = parse_date_local(value)
    if parsed is None:
        return False
    return parsed > (on or today())


def months_before(day: date, months: int) -> date:
    """Same calendar day ``months`` earlier, clamped to the month's length."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def years_before(day: date, years: int) -> date:
    return months_before(day, years * 12)
