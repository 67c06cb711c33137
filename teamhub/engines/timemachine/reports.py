"""
Report Generator - fixed-format summaries of the Time Machine log.

Four reports are built from the same event snapshot: iteration history,
development history, member participation and a weekly timeline summary.
Each can be rendered to plain text for download.
"""

import re
import unicodedata
from datetime import date, datetime, tzinfo
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from teamhub.engines.timemachine.aggregation import (
    iso_week_key,
    iso_week_label,
    local_date,
    localize,
    member_rollup,
    project_duration_days,
    sort_events,
)
from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.models.event_log import EventCategory, EventType

EXPORT_MEDIA_TYPE = "text/plain; charset=utf-8"
TITLE_RULE = "=" * 50
SECTION_RULE = "-" * 30
TIMESTAMP_FORMAT = "%d/%m/%Y %H:%M"
UNKNOWN_MEMBER = "Unknown member"


class ReportKind(str, Enum):
    ITERATION = "iteration"
    DEVELOPMENT = "development"
    PARTICIPATION = "participation"
    TIMELINE = "timeline"


class ReportStat(BaseModel):
    label: str
    value: Union[int, str]


class MemberCount(BaseModel):
    name: str
    count: int


class LabelledCount(BaseModel):
    label: str
    count: int


class ReportDefinition(BaseModel):
    """A built report. Exactly one of the body lists is used per kind."""

    kind: ReportKind
    title: str
    description: str
    stats: List[ReportStat]
    events: Optional[List[EventRecord]] = None
    members: Optional[List[MemberCount]] = None
    weekly_counts: Optional[List[LabelledCount]] = None


def _count(events: Iterable[EventRecord], category: EventCategory) -> int:
    return sum(1 for e in events if e.event_category == category)


def build_iteration_report(events: Sequence[EventRecord]) -> ReportDefinition:
    iterations = [
        e for e in events
        if e.event_category == EventCategory.ITERATION or e.event_type == EventType.ITERATION
    ]
    iteration_ids = {e.id for e in iterations}
    tests = [e for e in events if e.event_category == EventCategory.TEST]
    feedbacks = [e for e in events if e.event_category == EventCategory.FEEDBACK]
    body = iterations + [e for e in tests + feedbacks if e.id not in iteration_ids]

    return ReportDefinition(
        kind=ReportKind.ITERATION,
        title="Iteration History",
        description="Every iteration, test and feedback recorded for the project",
        stats=[
            ReportStat(label="Iterations", value=len(iterations)),
            ReportStat(label="Tests", value=len(tests)),
            ReportStat(label="Feedbacks", value=len(feedbacks)),
        ],
        events=sort_events(body),
    )


def build_development_report(
    events: Sequence[EventRecord],
    tz: Optional[tzinfo] = None,
) -> ReportDefinition:
    return ReportDefinition(
        kind=ReportKind.DEVELOPMENT,
        title="Development History",
        description="Complete chronology of the project's development",
        stats=[
            ReportStat(label="Project days", value=project_duration_days(events, tz)),
            ReportStat(label="Prototypes", value=_count(events, EventCategory.PROTOTYPE)),
            ReportStat(label="Evidences", value=_count(events, EventCategory.EVIDENCE)),
        ],
        events=sort_events(events),
    )


def build_participation_report(events: Sequence[EventRecord]) -> ReportDefinition:
    members = [
        MemberCount(name=r.full_name or UNKNOWN_MEMBER, count=r.total_events)
        for r in member_rollup(events)
    ]
    total_actions = len(events)
    average = round(total_actions / len(members)) if members else 0

    return ReportDefinition(
        kind=ReportKind.PARTICIPATION,
        title="Member Participation",
        description="Individual contributions of each team member",
        stats=[
            ReportStat(label="Active members", value=len(members)),
            ReportStat(label="Total actions", value=total_actions),
            ReportStat(label="Average per member", value=average),
        ],
        members=members,
    )


def _completed_ratio(events: Sequence[EventRecord], category: EventCategory) -> str:
    in_category = [e for e in events if e.event_category == category]
    completed = sum(1 for e in in_category if e.event_type == EventType.COMPLETION)
    return f"{completed}/{len(in_category)}"


def build_timeline_report(
    events: Sequence[EventRecord],
    tz: Optional[tzinfo] = None,
) -> ReportDefinition:
    weeks: Dict[str, LabelledCount] = {}
    for event in sort_events(events):
        day = local_date(event, tz)
        key = iso_week_key(day)
        if key not in weeks:
            weeks[key] = LabelledCount(label=iso_week_label(day), count=0)
        weeks[key].count += 1

    return ReportDefinition(
        kind=ReportKind.TIMELINE,
        title="Timeline Summary",
        description="Condensed overview of how the project evolved",
        stats=[
            ReportStat(label="Goals completed", value=_completed_ratio(events, EventCategory.GOAL)),
            ReportStat(label="Tasks completed", value=_completed_ratio(events, EventCategory.TASK)),
            ReportStat(label="Active weeks", value=len(weeks)),
        ],
        weekly_counts=list(weeks.values()),
    )


def build_report(
    kind: ReportKind,
    events: Sequence[EventRecord],
    tz: Optional[tzinfo] = None,
) -> ReportDefinition:
    kind = ReportKind(kind)
    if kind == ReportKind.ITERATION:
        return build_iteration_report(events)
    if kind == ReportKind.DEVELOPMENT:
        return build_development_report(events, tz)
    if kind == ReportKind.PARTICIPATION:
        return build_participation_report(events)
    return build_timeline_report(events, tz)


def build_reports(
    events: Sequence[EventRecord],
    tz: Optional[tzinfo] = None,
) -> List[ReportDefinition]:
    """All four reports, in menu order."""
    return [build_report(kind, events, tz) for kind in ReportKind]


def render_report(
    definition: ReportDefinition,
    generated_at: datetime,
    tz: Optional[tzinfo] = None,
) -> str:
    """
    Render a report as plain text.

    Output depends only on the definition, generated_at and tz, so the same
    inputs always give the same bytes.
    """
    lines = [
        definition.title,
        TITLE_RULE,
        "",
        definition.description,
        "",
        f"Generated at: {localize(generated_at, tz).strftime(TIMESTAMP_FORMAT)}",
        "",
        "STATISTICS",
        SECTION_RULE,
    ]
    lines.extend(f"{stat.label}: {stat.value}" for stat in definition.stats)
    lines.append("")

    if definition.events is not None:
        lines.extend(["EVENTS", SECTION_RULE])
        for event in definition.events:
            stamp = localize(event.created_at, tz).strftime(TIMESTAMP_FORMAT)
            lines.append(f"[{stamp}] {event.title}")
            if event.description:
                lines.append(f"   {event.description}")

    if definition.members is not None:
        lines.extend(["PARTICIPATION", SECTION_RULE])
        for position, member in enumerate(definition.members, start=1):
            lines.append(f"{position}. {member.name}: {member.count} actions")

    if definition.weekly_counts is not None:
        lines.extend(["WEEKLY ACTIVITY", SECTION_RULE])
        for week in definition.weekly_counts:
            lines.append(f"{week.label}: {week.count} events")

    return "\n".join(lines) + "\n"


def slugify(title: str) -> str:
    """Lowercase, ASCII, hyphen-separated."""
    ascii_title = (
        unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode("ascii")
    )
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_title.lower()).strip("-")
    return slug or "report"


def export_filename(definition: ReportDefinition, on_date: date) -> str:
    return f"{slugify(definition.title)}-{on_date.isoformat()}.txt"
