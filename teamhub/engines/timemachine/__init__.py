"""
Time Machine Engine - heatmaps, replay, evolution, reports and calendar.
"""

from teamhub.engines.timemachine.aggregation import (
    EventIndex,
    Histogram,
    MemberRollup,
    TimeMachineOverview,
    build_overview,
    category_distribution,
    filter_by_categories,
    hourly_histogram,
    member_rollup,
    peak_weeks,
    top_contributors,
    weekday_histogram,
    weekly_histogram,
)
from teamhub.engines.timemachine.replay import (
    ReplayFrame,
    ReplaySession,
    ReplayState,
)
from teamhub.engines.timemachine.evolution import (
    EvolutionRule,
    EvolutionStep,
    Milestone,
    default_rules,
    evolution_stats,
    extract_evolution,
)
from teamhub.engines.timemachine.reports import (
    EXPORT_MEDIA_TYPE,
    ReportDefinition,
    ReportKind,
    build_report,
    build_reports,
    export_filename,
    render_report,
)
from teamhub.engines.timemachine.calendar import (
    CalendarDay,
    CalendarDayEntry,
    CalendarMonth,
    day_entries,
    day_events,
    group_by_day,
    month_grid,
    shift_month,
)

__all__ = [
    "EventIndex",
    "Histogram",
    "MemberRollup",
    "TimeMachineOverview",
    "build_overview",
    "category_distribution",
    "filter_by_categories",
    "hourly_histogram",
    "member_rollup",
    "peak_weeks",
    "top_contributors",
    "weekday_histogram",
    "weekly_histogram",
    "ReplayFrame",
    "ReplaySession",
    "ReplayState",
    "EvolutionRule",
    "EvolutionStep",
    "Milestone",
    "default_rules",
    "evolution_stats",
    "extract_evolution",
    "EXPORT_MEDIA_TYPE",
    "ReportDefinition",
    "ReportKind",
    "build_report",
    "build_reports",
    "export_filename",
    "render_report",
    "CalendarDay",
    "CalendarDayEntry",
    "CalendarMonth",
    "day_entries",
    "day_events",
    "group_by_day",
    "month_grid",
    "shift_month",
]
