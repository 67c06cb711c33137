"""Unit tests for the report generator and text export."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from teamhub.engines.timemachine.reports import (
    EXPORT_MEDIA_TYPE,
    ReportKind,
    build_development_report,
    build_iteration_report,
    build_participation_report,
    build_report,
    build_reports,
    build_timeline_report,
    export_filename,
    render_report,
    slugify,
)
from teamhub.kernel.models.event_log import EventCategory, EventType

GENERATED_AT = datetime(2024, 3, 20, 15, 30, tzinfo=timezone.utc)


def stats_of(report):
    return [(s.label, s.value) for s in report.stats]


class TestBuilders:
    """The four fixed reports."""

    def test_iteration_report(self, sample_events):
        report = build_iteration_report(sample_events)

        assert stats_of(report) == [("Iterations", 0), ("Tests", 1), ("Feedbacks", 1)]
        assert [e.title for e in report.events] == ["Test run: Arm lift", "Feedback: Judges"]

    def test_iteration_report_counts_iteration_type(self, event_factory):
        """An iteration-type event outside the iteration category still counts once."""
        event = event_factory(EventCategory.PROTOTYPE, EventType.ITERATION, "Prototype: v2")
        report = build_iteration_report([event])

        assert stats_of(report)[0] == ("Iterations", 1)
        assert len(report.events) == 1

    def test_development_report(self, sample_events):
        report = build_development_report(sample_events)

        assert stats_of(report) == [("Project days", 10), ("Prototypes", 1), ("Evidences", 0)]
        assert len(report.events) == len(sample_events)
        assert report.events == sorted(report.events, key=lambda e: e.created_at)

    def test_participation_report(self, sample_events):
        report = build_participation_report(sample_events)

        assert stats_of(report) == [
            ("Active members", 3),
            ("Total actions", 7),
            ("Average per member", 2),
        ]
        assert [(m.name, m.count) for m in report.members] == [("Ana", 3), ("Bruno", 3), ("Carla", 1)]

    def test_participation_without_members(self):
        report = build_participation_report([])
        assert stats_of(report)[2] == ("Average per member", 0)
        assert report.members == []

    def test_timeline_report(self, sample_events):
        report = build_timeline_report(sample_events)

        assert stats_of(report) == [
            ("Goals completed", "1/2"),
            ("Tasks completed", "1/2"),
            ("Active weeks", 2),
        ]
        assert [(w.label, w.count) for w in report.weekly_counts] == [
            ("Week 10 of 2024", 5),
            ("Week 11 of 2024", 2),
        ]

    def test_build_reports_menu_order(self, sample_events):
        kinds = [r.kind for r in build_reports(sample_events)]
        assert kinds == list(ReportKind)

    def test_unknown_kind(self, sample_events):
        with pytest.raises(ValueError):
            build_report("weekly", sample_events)


class TestRender:
    """Plain-text rendering."""

    def test_participation_text(self, sample_events):
        text = render_report(build_participation_report(sample_events), GENERATED_AT)

        assert text == (
            "Member Participation\n"
            + "=" * 50 + "\n"
            "\n"
            "Individual contributions of each team member\n"
            "\n"
            "Generated at: 20/03/2024 15:30\n"
            "\n"
            "STATISTICS\n"
            + "-" * 30 + "\n"
            "Active members: 3\n"
            "Total actions: 7\n"
            "Average per member: 2\n"
            "\n"
            "PARTICIPATION\n"
            + "-" * 30 + "\n"
            "1. Ana: 3 actions\n"
            "2. Bruno: 3 actions\n"
            "3. Carla: 1 actions\n"
        )

    def test_event_lines_with_descriptions(self, event_factory, base_time):
        events = [event_factory(EventCategory.TEST, title="Test run: Lift", at=base_time, description="Arm stalls")]
        text = render_report(build_iteration_report(events), GENERATED_AT)

        assert "EVENTS\n" in text
        assert "[04/03/2024 09:00] Test run: Lift\n   Arm stalls\n" in text

    def test_weekly_section(self, sample_events):
        text = render_report(build_timeline_report(sample_events), GENERATED_AT)
        assert "WEEKLY ACTIVITY\n" in text
        assert "Week 10 of 2024: 5 events\n" in text

    def test_empty_report_still_has_header(self):
        text = render_report(build_iteration_report([]), GENERATED_AT)

        assert text.startswith("Iteration History\n")
        assert "Generated at: 20/03/2024 15:30" in text
        assert "Iterations: 0" in text

    def test_timestamps_follow_viewer_zone(self):
        text = render_report(build_iteration_report([]), GENERATED_AT, ZoneInfo("America/Sao_Paulo"))
        assert "Generated at: 20/03/2024 12:30" in text

    def test_deterministic(self, sample_events):
        report = build_development_report(sample_events)
        assert render_report(report, GENERATED_AT) == render_report(report, GENERATED_AT)


class TestExportNaming:
    def test_filename(self, sample_events):
        report = build_participation_report(sample_events)
        assert export_filename(report, date(2024, 3, 20)) == "member-participation-2024-03-20.txt"

    def test_slugify_strips_accents(self):
        assert slugify("Histórico de Iteração") == "historico-de-iteracao"
        assert slugify("  !!  ") == "report"

    def test_media_type(self):
        assert EXPORT_MEDIA_TYPE.startswith("text/plain")
