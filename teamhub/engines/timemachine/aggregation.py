"""
Aggregation Engine - derived views over the Time Machine log.

Every function here is pure: it takes the current event snapshot and
returns a fresh structure, so views can be recomputed from scratch whenever
the log changes. Nothing is cached between calls.

Time-based views localise created_at into the viewer's time zone (UTC by
default) before bucketing.
"""

import uuid
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, Dict, Iterable, List, Literal, Optional, Sequence, TypeVar, Union

from pydantic import BaseModel, Field

from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.models.event_log import EventCategory, EventType

T = TypeVar("T")

WEEKDAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


def localize(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Express a stored timestamp in the viewer's zone."""
    return moment.astimezone(tz or timezone.utc)


def local_date(event: EventRecord, tz: Optional[tzinfo] = None) -> date:
    return localize(event.created_at, tz).date()


def sort_events(events: Iterable[EventRecord], descending: bool = False) -> List[EventRecord]:
    """Stable sort by created_at."""
    return sorted(events, key=lambda e: e.created_at, reverse=descending)


def latest_events(events: Iterable[EventRecord], limit: int) -> List[EventRecord]:
    """Newest-first slice of the log (dashboard "recent activity")."""
    if limit <= 0:
        return []
    return sort_events(events, descending=True)[:limit]


def filter_by_categories(
    events: Iterable[EventRecord],
    categories: Optional[Iterable[Union[EventCategory, str]]],
) -> List[EventRecord]:
    """
    Keep events whose category is selected.

    An empty or missing selection means no filter. Input order is preserved.
    """
    wanted = {EventCategory(c) for c in categories or ()}
    if not wanted:
        return list(events)
    return [e for e in events if e.event_category in wanted]


# Histograms

class HistogramBucket(BaseModel):
    """One bucket of a time histogram."""

    key: Union[int, str]
    label: str
    count: int
    intensity: int = 0  # 0..4, for heatmap shading


class Histogram(BaseModel):
    """Counts per time unit over the full domain of the unit."""

    unit: Literal["hour", "weekday", "week"]
    buckets: List[HistogramBucket]
    # Never below 1 so count / max_count is always defined
    max_count: int = 1
    total: int = 0

    def counts(self) -> Dict[Union[int, str], int]:
        return {b.key: b.count for b in self.buckets}

    def peak(self) -> Optional[HistogramBucket]:
        """First bucket reaching max_count; None when every bucket is empty."""
        for bucket in self.buckets:
            if bucket.count and bucket.count == self.max_count:
                return bucket
        return None


def heat_intensity(value: int, max_count: int) -> int:
    """Map a count to a 0..4 shade relative to the busiest bucket."""
    if value <= 0 or max_count <= 0:
        return 0
    ratio = value / max_count
    if ratio < 0.25:
        return 1
    if ratio < 0.5:
        return 2
    if ratio < 0.75:
        return 3
    return 4


def _histogram(
    unit: Literal["hour", "weekday", "week"],
    labels: Dict[Union[int, str], str],
    counts: Dict[Union[int, str], int],
) -> Histogram:
    max_count = max([*counts.values(), 1])
    buckets = [
        HistogramBucket(
            key=key,
            label=label,
            count=counts.get(key, 0),
            intensity=heat_intensity(counts.get(key, 0), max_count),
        )
        for key, label in labels.items()
    ]
    return Histogram(
        unit=unit,
        buckets=buckets,
        max_count=max_count,
        total=sum(counts.values()),
    )


def hourly_histogram(events: Iterable[EventRecord], tz: Optional[tzinfo] = None) -> Histogram:
    """Activity by hour of day; always 24 buckets (0..23)."""
    counts: Dict[Union[int, str], int] = {hour: 0 for hour in range(24)}
    for event in events:
        counts[localize(event.created_at, tz).hour] += 1
    labels = {hour: f"{hour:02d}h" for hour in range(24)}
    return _histogram("hour", labels, counts)


def weekday_index(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return moment.isoweekday() % 7


def weekday_histogram(events: Iterable[EventRecord], tz: Optional[tzinfo] = None) -> Histogram:
    """Activity by day of week; always 7 buckets, Sunday first."""
    counts: Dict[Union[int, str], int] = {day: 0 for day in range(7)}
    for event in events:
        counts[weekday_index(localize(event.created_at, tz))] += 1
    labels = {day: WEEKDAY_LABELS[day] for day in range(7)}
    return _histogram("weekday", labels, counts)


def iso_week_key(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"{year}-W{week:02d}"


def iso_week_label(day: date) -> str:
    year, week, _ = day.isocalendar()
    return f"Week {week} of {year}"


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


def weekly_histogram(events: Sequence[EventRecord], tz: Optional[tzinfo] = None) -> Histogram:
    """
    Activity per ISO week, from the first event's week to the last event's.

    Quiet weeks in between are present with a zero count; no events means no
    buckets.
    """
    days = [local_date(e, tz) for e in events]
    if not days:
        return Histogram(unit="week", buckets=[], max_count=1, total=0)

    counts: Dict[Union[int, str], int] = {}
    for day in days:
        key = iso_week_key(day)
        counts[key] = counts.get(key, 0) + 1

    labels: Dict[Union[int, str], str] = {}
    cursor = _week_start(min(days))
    last = _week_start(max(days))
    while cursor <= last:
        labels[iso_week_key(cursor)] = iso_week_label(cursor)
        cursor += timedelta(days=7)

    return _histogram("week", labels, counts)


# Rankings

def top_n(entries: Iterable[T], n: int, key: Callable[[T], int]) -> List[T]:
    """Highest `key` first, ties in input order, at most n entries."""
    if n <= 0:
        return []
    return sorted(entries, key=key, reverse=True)[:n]


class MemberRollup(BaseModel):
    """Per-member activity summary."""

    member_id: uuid.UUID
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    total_events: int = 0
    goals_completed: int = 0
    tasks_completed: int = 0
    evidences_created: int = 0
    tests_run: int = 0
    feedbacks_given: int = 0
    category_counts: Dict[EventCategory, int] = Field(default_factory=dict)
    events: List[EventRecord] = Field(default_factory=list)


def member_rollup(events: Iterable[EventRecord]) -> List[MemberRollup]:
    """
    Group events by acting member.

    Events without a user_id (system events) are left out rather than
    counted under an "unknown" member. Sorted by total_events descending,
    ties in order of first appearance.
    """
    rollups: Dict[uuid.UUID, MemberRollup] = {}

    for event in events:
        if event.user_id is None:
            continue

        rollup = rollups.get(event.user_id)
        if rollup is None:
            rollup = MemberRollup(member_id=event.user_id)
            rollups[event.user_id] = rollup
        if rollup.full_name is None and event.user is not None:
            rollup.full_name = event.user.full_name
            rollup.avatar_url = event.user.avatar_url

        rollup.total_events += 1
        rollup.events.append(event)
        rollup.category_counts[event.event_category] = (
            rollup.category_counts.get(event.event_category, 0) + 1
        )

        category = event.event_category
        if category == EventCategory.GOAL and event.event_type == EventType.COMPLETION:
            rollup.goals_completed += 1
        if category == EventCategory.TASK and event.event_type == EventType.COMPLETION:
            rollup.tasks_completed += 1
        if category == EventCategory.EVIDENCE:
            rollup.evidences_created += 1
        if category == EventCategory.TEST:
            rollup.tests_run += 1
        if category == EventCategory.FEEDBACK:
            rollup.feedbacks_given += 1

    return sorted(rollups.values(), key=lambda r: r.total_events, reverse=True)


class ContributorRank(BaseModel):
    member_id: uuid.UUID
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    count: int


def _ranked_members(events: Iterable[EventRecord], limit: int) -> List[ContributorRank]:
    return [
        ContributorRank(
            member_id=r.member_id,
            full_name=r.full_name,
            avatar_url=r.avatar_url,
            count=r.total_events,
        )
        for r in top_n(member_rollup(events), limit, key=lambda r: r.total_events)
    ]


def top_contributors(events: Iterable[EventRecord], limit: int = 3) -> List[ContributorRank]:
    """Members with the most events."""
    return _ranked_members(events, limit)


def top_active_members(events: Iterable[EventRecord], limit: int = 5) -> List[ContributorRank]:
    """Dashboard variant of top_contributors with a longer list."""
    return _ranked_members(events, limit)


class WeekCount(BaseModel):
    week: str  # YYYY-Www
    label: str
    count: int


def weekly_counts(events: Iterable[EventRecord], tz: Optional[tzinfo] = None) -> List[WeekCount]:
    """Count per ISO week that has activity, in first-seen order."""
    found: Dict[str, WeekCount] = {}
    for event in events:
        day = local_date(event, tz)
        key = iso_week_key(day)
        entry = found.get(key)
        if entry is None:
            found[key] = WeekCount(week=key, label=iso_week_label(day), count=1)
        else:
            entry.count += 1
    return list(found.values())


def peak_weeks(
    events: Iterable[EventRecord],
    limit: int = 3,
    tz: Optional[tzinfo] = None,
) -> List[WeekCount]:
    """Busiest ISO weeks."""
    return top_n(weekly_counts(events, tz), limit, key=lambda w: w.count)


class CategoryCount(BaseModel):
    category: EventCategory
    count: int
    percentage: float = 0.0


def category_distribution(events: Sequence[EventRecord]) -> List[CategoryCount]:
    """Events per category, busiest first, ties in first-seen order."""
    counts: Dict[EventCategory, int] = {}
    for event in events:
        counts[event.event_category] = counts.get(event.event_category, 0) + 1

    total = sum(counts.values())
    entries = [
        CategoryCount(
            category=category,
            count=count,
            percentage=round(count * 100 / total, 1) if total else 0.0,
        )
        for category, count in counts.items()
    ]
    return sorted(entries, key=lambda c: c.count, reverse=True)


def project_duration_days(events: Sequence[EventRecord], tz: Optional[tzinfo] = None) -> int:
    """Calendar days from the first to the last event, inclusive; 0 below two events."""
    if len(events) < 2:
        return 0
    days = [local_date(e, tz) for e in events]
    return (max(days) - min(days)).days + 1


# Related events

class EventIndex:
    """
    Id lookup over a loaded snapshot.

    related_event_id is a lookup key, not ownership: a reference to an event
    that is not in the snapshot resolves to None.
    """

    def __init__(self, events: Iterable[EventRecord]):
        self._by_id: Dict[uuid.UUID, EventRecord] = {e.id: e for e in events}

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, event_id: object) -> bool:
        return event_id in self._by_id

    def get(self, event_id: Optional[uuid.UUID]) -> Optional[EventRecord]:
        if event_id is None:
            return None
        return self._by_id.get(event_id)

    def resolve_related(self, event: EventRecord) -> Optional[EventRecord]:
        return self.get(event.related_event_id)

    def lineage(self, event: EventRecord) -> List[EventRecord]:
        """Follow related links backwards (nearest first), stopping on cycles or gaps."""
        chain: List[EventRecord] = []
        seen = {event.id}
        current = self.resolve_related(event)
        while current is not None and current.id not in seen:
            chain.append(current)
            seen.add(current.id)
            current = self.resolve_related(current)
        return chain


# Overview

class TimeMachineOverview(BaseModel):
    """Everything the heatmap panel shows, for one filter selection."""

    total_events: int
    categories: List[EventCategory]
    project_days: int
    hourly: Histogram
    weekday: Histogram
    weekly: Histogram
    top_contributors: List[ContributorRank]
    top_active: List[ContributorRank]
    peak_weeks: List[WeekCount]
    category_distribution: List[CategoryCount]
    # Newest first
    recent_events: List[EventRecord] = Field(default_factory=list)


def build_overview(
    events: Sequence[EventRecord],
    categories: Optional[Iterable[Union[EventCategory, str]]] = None,
    tz: Optional[tzinfo] = None,
    contributors_limit: int = 3,
    peak_weeks_limit: int = 3,
    top_active_limit: int = 5,
    recent_limit: int = 10,
) -> TimeMachineOverview:
    """Filter once, then derive every heatmap and ranking from the result."""
    selected = [EventCategory(c) for c in categories or ()]
    filtered = filter_by_categories(events, selected)
    return TimeMachineOverview(
        total_events=len(filtered),
        categories=selected,
        project_days=project_duration_days(filtered, tz),
        hourly=hourly_histogram(filtered, tz),
        weekday=weekday_histogram(filtered, tz),
        weekly=weekly_histogram(filtered, tz),
        top_contributors=top_contributors(filtered, contributors_limit),
        top_active=top_active_members(filtered, top_active_limit),
        peak_weeks=peak_weeks(filtered, peak_weeks_limit, tz),
        category_distribution=category_distribution(filtered),
        recent_events=latest_events(filtered, recent_limit),
    )
