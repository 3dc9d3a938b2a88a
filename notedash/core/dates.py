"""
Calendar period helpers.

Calendar notes are named after the period they cover ('20240501.md',
'2024-W18.md', '2024-05.md', '2024-Q2.md', '2024.md') and lines are
scheduled into a period with a '>period' annotation. These helpers convert
between dates, period strings and filenames, and evaluate the relative
offset grammar used by reschedule requests ('+2d', '1w', '-3b', ...).
"""

import re
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from dateutil import parser as date_parser

RE_DAY = r'\d{4}-[01]\d-[0-3]\d'
RE_WEEK = r'\d{4}-W[0-5]\d'
RE_MONTH = r'\d{4}-[01]\d'
RE_QUARTER = r'\d{4}-Q[1-4]'
RE_YEAR = r'\d{4}'
# Longest forms first so '2024-05-01' is not read as '2024-05'
RE_PERIOD = f'(?:{RE_DAY}|{RE_WEEK}|{RE_QUARTER}|{RE_MONTH}|{RE_YEAR})'

RE_SCHEDULED = re.compile(r'(?:^|(?<=\s))>(today|' + RE_PERIOD + r')(?=\s|$)')
RE_DATE_INTERVAL = re.compile(r'^[+\-]?\d+[BbDdWwMmQqYy]$')
RE_DONE_MARKER = re.compile(
    r'@done\((\d{4}-\d{2}-\d{2})(?:\s+\d{1,2}:\d{2}(?:\s?[AaPp][Mm])?)?\)'
)

_PERIOD_PATTERNS = [
    ("day", re.compile(f'^{RE_DAY}$')),
    ("week", re.compile(f'^{RE_WEEK}$')),
    ("quarter", re.compile(f'^{RE_QUARTER}$')),
    ("month", re.compile(f'^{RE_MONTH}$')),
    ("year", re.compile(f'^{RE_YEAR}$')),
]

_DAILY_FILENAME = re.compile(r'^(\d{4})(\d{2})(\d{2})\.(md|txt)$')
_PERIOD_FILENAME = re.compile(f'^({RE_WEEK}|{RE_QUARTER}|{RE_MONTH}|{RE_YEAR})' + r'\.(md|txt)$')


def period_type(period: str) -> Optional[str]:
    """Return 'day', 'week', 'month', 'quarter' or 'year' for a period string."""
    for name, pattern in _PERIOD_PATTERNS:
        if pattern.match(period):
            return name
    return None


def day_str(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def week_str(d: date) -> str:
    year, week, _ = d.isocalendar()
    return f"{year}-W{week:02d}"


def month_str(d: date) -> str:
    return d.strftime("%Y-%m")


def quarter_str(d: date) -> str:
    return f"{d.year}-Q{(d.month - 1) // 3 + 1}"


def year_str(d: date) -> str:
    return str(d.year)


_PERIOD_FORMATTERS = {
    "day": day_str,
    "week": week_str,
    "month": month_str,
    "quarter": quarter_str,
    "year": year_str,
}


def period_str_for(period: str, d: date) -> str:
    """Period string of the given granularity that contains date d."""
    return _PERIOD_FORMATTERS[period](d)


def filename_for_period(period_str: str) -> str:
    """
    Calendar note filename for a period string.

    Args:
        period_str: e.g. '2024-05-01' or '2024-W18'

    Returns:
        '20240501.md' for days, '<period>.md' otherwise
    """
    if period_type(period_str) == "day":
        return period_str.replace("-", "") + ".md"
    return f"{period_str}.md"


def _period_pattern_of(filename: str) -> Optional[str]:
    if "/" in filename:
        return None
    m = _DAILY_FILENAME.match(filename)
    if m:
        return f"{m.group(1)}-{m.group(2)}-{m.group(3)}"
    m = _PERIOD_FILENAME.match(filename)
    if m:
        return m.group(1)
    return None


def period_from_filename(filename: str) -> Optional[str]:
    """
    Inverse of filename_for_period; None for project notes.

    Names shaped like a period that isn't a real one ('20240231.md',
    '2024-W00.md', '2024-00.md') are not calendar notes either.
    """
    period = _period_pattern_of(filename)
    if period is None:
        return None
    try:
        period_bounds(period)
    except ValueError:
        return None
    return period


def is_malformed_calendar_filename(filename: str) -> bool:
    """Shaped like a calendar note's name but naming no real period."""
    return _period_pattern_of(filename) is not None and period_from_filename(filename) is None


def is_calendar_filename(filename: str) -> bool:
    return period_from_filename(filename) is not None


def period_bounds(period_str: str) -> Tuple[date, date]:
    """
    First and last day covered by a period string.

    Raises:
        ValueError: if the string is not a period
    """
    kind = period_type(period_str)
    if kind == "day":
        d = date.fromisoformat(period_str)
        return d, d
    if kind == "week":
        year, week = period_str.split("-W")
        start = date.fromisocalendar(int(year), int(week), 1)
        return start, start + timedelta(days=6)
    if kind == "month":
        year, month = period_str.split("-")
        start = date(int(year), int(month), 1)
        return start, start + relativedelta(months=1, days=-1)
    if kind == "quarter":
        year, quarter = period_str.split("-Q")
        start = date(int(year), (int(quarter) - 1) * 3 + 1, 1)
        return start, start + relativedelta(months=3, days=-1)
    if kind == "year":
        start = date(int(period_str), 1, 1)
        return start, date(int(period_str), 12, 31)
    raise ValueError(f"Not a calendar period: {period_str}")


def scheduled_periods(content: str) -> List[str]:
    """All '>period' annotations in a line, in order ('today' kept literally)."""
    return RE_SCHEDULED.findall(content)


def resolve_period(period_str: str, today: date) -> str:
    return day_str(today) if period_str == "today" else period_str


def includes_scheduled_future_date(content: str, cutoff: date) -> bool:
    """True if the line is scheduled to a period starting after cutoff."""
    for period in scheduled_periods(content):
        if period == "today":
            continue
        try:
            start, _ = period_bounds(period)
        except ValueError:
            continue
        if start > cutoff:
            return True
    return False


def is_scheduled_to(content: str, period_str: str, today: date) -> bool:
    """True if the line carries a '>period_str' annotation (or '>today' for today)."""
    for period in scheduled_periods(content):
        if period == period_str:
            return True
        if period == "today" and period_str == day_str(today):
            return True
    return False


def remove_scheduled_dates(content: str) -> str:
    """Strip every '>period' annotation and tidy the spacing left behind."""
    stripped = RE_SCHEDULED.sub("", content)
    return re.sub(r'\s{2,}', ' ', stripped).strip()


def add_business_days(start: date, days: int) -> date:
    """Step over Saturdays and Sundays while adding (or subtracting) days."""
    step = 1 if days >= 0 else -1
    remaining = abs(days)
    current = start
    while remaining > 0:
        current += timedelta(days=step)
        if current.weekday() < 5:
            remaining -= 1
    return current


def calc_offset_date(base: date, interval: str) -> date:
    """
    Apply a relative offset such as '+3d', '2w', '-1m' or '5b' to base.

    Raises:
        ValueError: if interval doesn't match the offset grammar
    """
    if not RE_DATE_INTERVAL.match(interval):
        raise ValueError(f"Invalid date interval '{interval}'")
    unit = interval[-1].lower()
    amount = int(interval[:-1])
    if unit == "b":
        return add_business_days(base, amount)
    if unit == "d":
        return base + timedelta(days=amount)
    if unit == "w":
        return base + timedelta(weeks=amount)
    if unit == "m":
        return base + relativedelta(months=amount)
    if unit == "q":
        return base + relativedelta(months=3 * amount)
    return base + relativedelta(years=amount)


_UNIT_PERIODS = {
    "b": "day",
    "d": "day",
    "w": "week",
    "m": "month",
    "q": "quarter",
    "y": "year",
}


def calc_offset_period_str(base: date, interval: str) -> str:
    """
    Like calc_offset_date, but returns a period string of the interval's
    own granularity: '1w' from a Wednesday gives next week's '2024-W19'.
    """
    target = calc_offset_date(base, interval)
    return period_str_for(_UNIT_PERIODS[interval[-1].lower()], target)


def done_dates(content: str) -> List[str]:
    """ISO dates of every '@done(...)' marker in a line."""
    return RE_DONE_MARKER.findall(content)


def done_marker(when: datetime) -> str:
    """Completion marker in the form '@done(2024-05-01 10:30 AM)'."""
    return f"@done({when.strftime('%Y-%m-%d %I:%M %p')})"


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a persisted ISO timestamp; None when absent or malformed."""
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except (ValueError, TypeError, OverflowError):
        return None
