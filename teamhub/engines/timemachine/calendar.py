"""
Calendar/Timeline View - month grid and per-day drill-down.

Navigation between months never needs a new query: the grid is computed
from whatever event snapshot the caller already holds.
"""

from datetime import date, timedelta, tzinfo
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel

from teamhub.engines.timemachine.aggregation import local_date, localize, sort_events
from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.models.event_log import EventCategory

# The padded grid has to stay inside date.min..date.max
MIN_YEAR = date.min.year + 1
MAX_YEAR = date.max.year - 1


class CalendarDay(BaseModel):
    date: date
    in_month: bool
    event_count: int = 0
    is_active: bool = False
    # First distinct categories of the day, in order of appearance
    categories: List[EventCategory] = []
    overflow: int = 0


class CalendarMonth(BaseModel):
    year: int
    month: int
    # Rows of 7 days, Sunday first
    weeks: List[List[CalendarDay]]
    total_events: int
    active_days: int


def group_by_day(
    events: Iterable[EventRecord],
    tz: Optional[tzinfo] = None,
) -> Dict[date, List[EventRecord]]:
    """Events keyed by local calendar date, each list oldest first."""
    days: Dict[date, List[EventRecord]] = {}
    for event in sort_events(events):
        days.setdefault(local_date(event, tz), []).append(event)
    return days


def day_events(
    events: Iterable[EventRecord],
    day: date,
    tz: Optional[tzinfo] = None,
) -> List[EventRecord]:
    return sort_events(e for e in events if local_date(e, tz) == day)


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
    """(year, month) moved by delta months."""
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _month_bounds(year: int, month: int) -> Tuple[date, date]:
    first = date(year, month, 1)
    next_year, next_month = shift_month(year, month, 1)
    return first, date(next_year, next_month, 1) - timedelta(days=1)


def _calendar_day(
    day: date,
    in_month: bool,
    events: List[EventRecord],
    max_indicators: int,
) -> CalendarDay:
    distinct: List[EventCategory] = []
    for event in events:
        if event.event_category not in distinct:
            distinct.append(event.event_category)
    shown = distinct[:max(0, max_indicators)]
    return CalendarDay(
        date=day,
        in_month=in_month,
        event_count=len(events),
        is_active=bool(events),
        categories=shown,
        overflow=len(distinct) - len(shown),
    )


def month_grid(
    events: Iterable[EventRecord],
    year: int,
    month: int,
    tz: Optional[tzinfo] = None,
    max_indicators: int = 3,
) -> CalendarMonth:
    """
    Full weeks covering the month, padded with adjacent-month days.

    Padding days carry their own events too, with in_month=False.

    Raises:
        ValueError: year outside MIN_YEAR..MAX_YEAR or month outside 1..12
    """
    if not MIN_YEAR <= year <= MAX_YEAR:
        raise ValueError(f"year must be in {MIN_YEAR}..{MAX_YEAR}, got {year}")
    first, last = _month_bounds(year, month)
    # weekday(): Monday=0; shift so the grid starts on Sunday
    start = first - timedelta(days=(first.weekday() + 1) % 7)
    end = last + timedelta(days=(5 - last.weekday()) % 7)

    by_day = group_by_day(events, tz)
    weeks: List[List[CalendarDay]] = []
    cursor = start
    while cursor <= end:
        week = []
        for _ in range(7):
            week.append(
                _calendar_day(
                    cursor,
                    first <= cursor <= last,
                    by_day.get(cursor, []),
                    max_indicators,
                )
            )
            cursor += timedelta(days=1)
        weeks.append(week)

    in_month = [d for week in weeks for d in week if d.in_month]
    return CalendarMonth(
        year=year,
        month=month,
        weeks=weeks,
        total_events=sum(d.event_count for d in in_month),
        active_days=sum(1 for d in in_month if d.is_active),
    )


def event_time_label(event: EventRecord, tz: Optional[tzinfo] = None) -> str:
    """HH:MM of an event in the viewer's zone, for the day drill-down."""
    return localize(event.created_at, tz).strftime("%H:%M")


class CalendarDayEntry(BaseModel):
    time: str
    event: EventRecord


def day_entries(
    events: Iterable[EventRecord],
    day: date,
    tz: Optional[tzinfo] = None,
) -> List[CalendarDayEntry]:
    """The day's events with their local HH:MM labels, oldest first."""
    return [
        CalendarDayEntry(time=event_time_label(event, tz), event=event)
        for event in day_events(events, day, tz)
    ]
