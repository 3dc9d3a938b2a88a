"""
Text-marker classifiers.

Sorting and filtering code never inspects marker syntax itself: it asks a
Classifiers instance. Swap any predicate to change what counts as a
priority, a time block, an overdue item or a completion today.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Callable, Optional, Tuple
import re

from notedash.core.dates import (
    done_dates, scheduled_periods, period_bounds, period_from_filename, day_str,
)
from notedash.core.models import Line, COMPLETED_TYPES, OPEN

RE_PRIORITY = re.compile(r'^(>>|!!!|!!|!)(?=\s|$)')
RE_TIMEBLOCK = re.compile(
    r'(?:^|\s)(?:at\s+)?'
    r'(\d{1,2})(?::(\d{2}))?\s?([AaPp][Mm])?'
    r'(?:\s*(?:-|–|to)\s*(\d{1,2})(?::(\d{2}))?\s?([AaPp][Mm])?)?'
    r'(?=\s|$)'
)

PRIORITY_MARKERS = {"": 0, "!": 1, "!!": 2, "!!!": 3, ">>": 4}


def priority_of(content: str) -> int:
    """0 for none, 1-3 for '!'..'!!!', 4 for the '>>' working-on marker"""
    m = RE_PRIORITY.match(content.strip())
    return PRIORITY_MARKERS[m.group(1)] if m else 0


def strip_priority(content: str) -> str:
    return RE_PRIORITY.sub("", content.strip()).strip()


def _to_time(hour: str, minute: Optional[str], meridiem: Optional[str]) -> Optional[time]:
    h = int(hour)
    m = int(minute) if minute else 0
    if meridiem:
        if h < 1 or h > 12:
            return None
        if meridiem.lower() == "pm" and h != 12:
            h += 12
        elif meridiem.lower() == "am" and h == 12:
            h = 0
    if h > 23 or m > 59:
        return None
    return time(h, m)


def timeblock_range(content: str) -> Optional[Tuple[time, Optional[time]]]:
    """
    Start (and end, if given) of the first time block in a line.

    A bare number is not a time block: it needs minutes or am/pm.
    """
    for m in RE_TIMEBLOCK.finditer(content):
        h1, m1, ap1, h2, m2, ap2 = m.groups()
        if not (m1 or ap1):
            continue
        # '2-4pm' carries the meridiem on the end time only
        start = _to_time(h1, m1, ap1 or ap2)
        if start is None:
            continue
        end = _to_time(h2, m2, ap2 or ap1) if h2 else None
        return start, end
    return None


def has_timeblock(content: str) -> bool:
    return timeblock_range(content) is not None


def start_time_str(content: str) -> str:
    """'HH:MM' start of the line's time block, '' if none"""
    block = timeblock_range(content)
    return block[0].strftime("%H:%M") if block else ""


def is_active_or_future_timeblock(content: str, now: datetime) -> bool:
    """Time block that is running now or starts later today"""
    block = timeblock_range(content)
    if block is None:
        return False
    start, end = block
    if end is None:
        # Blocks without an end time are taken to last an hour
        end_at = datetime.combine(now.date(), start) + timedelta(hours=1)
    else:
        end_at = datetime.combine(now.date(), end)
    return end_at > now


def due_date_of(line: Line) -> str:
    """Start of the latest scheduled period, or the calendar note's own period"""
    starts = []
    for period in scheduled_periods(line.content):
        if period == "today":
            continue
        try:
            starts.append(period_bounds(period)[0])
        except ValueError:
            continue
    if starts:
        return day_str(max(starts))
    if line.note_type == "Calendar":
        period = period_from_filename(line.filename)
        if period:
            return day_str(period_bounds(period)[0])
    return ""


def is_overdue(line: Line, today: date) -> bool:
    """
    Open task whose every scheduled period ended before today.

    An unscheduled task in a calendar note is due in that note's period.
    """
    if line.type != OPEN:
        return False
    ends = []
    for period in scheduled_periods(line.content):
        if period == "today":
            return False
        try:
            ends.append(period_bounds(period)[1])
        except ValueError:
            continue
    if not ends and line.note_type == "Calendar":
        period = period_from_filename(line.filename)
        if period:
            ends.append(period_bounds(period)[1])
    return bool(ends) and max(ends) < today


def is_done_today(line: Line, today: date) -> bool:
    """Completed task or checklist carrying today's @done(...) date"""
    return line.type in COMPLETED_TYPES and day_str(today) in done_dates(line.content)


@dataclass
class Classifiers:
    """Injectable predicates over a line"""
    priority: Callable[[str], int] = priority_of
    has_timeblock: Callable[[str], bool] = has_timeblock
    start_time: Callable[[str], str] = start_time_str
    is_current_timeblock: Callable[[str, datetime], bool] = is_active_or_future_timeblock
    is_overdue: Callable[[Line, date], bool] = is_overdue
    is_done_today: Callable[[Line, date], bool] = is_done_today
    due_date: Callable[[Line], str] = due_date_of
