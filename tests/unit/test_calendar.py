"""Unit tests for the calendar/timeline view."""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from teamhub.engines.timemachine.calendar import (
    MAX_YEAR,
    MIN_YEAR,
    day_entries,
    day_events,
    event_time_label,
    group_by_day,
    month_grid,
    shift_month,
)
from teamhub.kernel.models.event_log import EventCategory


class TestMonthGrid:
    """Sunday-first month grid."""

    def test_march_2024_layout(self, sample_events):
        grid = month_grid(sample_events, 2024, 3)

        assert len(grid.weeks) == 6
        assert all(len(week) == 7 for week in grid.weeks)
        assert grid.weeks[0][0].date == date(2024, 2, 25)
        assert grid.weeks[0][0].in_month is False
        assert grid.weeks[-1][-1].date == date(2024, 4, 6)
        assert all(week[0].date.isoweekday() == 7 for week in grid.weeks)

    def test_day_cells(self, sample_events):
        grid = month_grid(sample_events, 2024, 3)
        cells = {d.date: d for week in grid.weeks for d in week}

        monday = cells[date(2024, 3, 4)]
        assert monday.event_count == 2
        assert monday.is_active
        assert monday.categories == [EventCategory.GOAL, EventCategory.TASK]
        assert monday.overflow == 0
        assert not cells[date(2024, 3, 8)].is_active
        assert grid.total_events == 7
        assert grid.active_days == 6

    def test_exact_four_week_month(self):
        """February 2015 starts on Sunday and ends on Saturday."""
        grid = month_grid([], 2015, 2)

        assert len(grid.weeks) == 4
        assert all(d.in_month for week in grid.weeks for d in week)

    def test_indicator_overflow(self, event_factory, base_time):
        categories = [
            EventCategory.GOAL,
            EventCategory.TASK,
            EventCategory.TEST,
            EventCategory.MEETING,
            EventCategory.TASK,
            EventCategory.ROBOT,
        ]
        events = [
            event_factory(category, at=base_time.replace(hour=9 + i))
            for i, category in enumerate(categories)
        ]
        cells = {d.date: d for week in month_grid(events, 2024, 3).weeks for d in week}
        cell = cells[date(2024, 3, 4)]

        assert cell.categories == [EventCategory.GOAL, EventCategory.TASK, EventCategory.TEST]
        assert cell.overflow == 2
        assert cell.event_count == 6

    def test_timezone_moves_event_to_previous_day(self, event_factory):
        event = event_factory(at=datetime(2024, 3, 1, 1, 0, tzinfo=timezone.utc))
        tz = ZoneInfo("America/Sao_Paulo")

        grid = month_grid([event], 2024, 3, tz)
        cells = {d.date: d for week in grid.weeks for d in week}

        assert cells[date(2024, 2, 29)].event_count == 1
        assert cells[date(2024, 2, 29)].in_month is False
        assert grid.total_events == 0

    @pytest.mark.parametrize("year, month", [(MAX_YEAR + 1, 12), (MIN_YEAR - 1, 1), (2024, 13)])
    def test_out_of_range_raises_value_error(self, year, month):
        """December 9999 and January 0001 would pad past date.max / date.min."""
        with pytest.raises(ValueError):
            month_grid([], year, month)

    @pytest.mark.parametrize("year, month", [(MAX_YEAR, 12), (MIN_YEAR, 1)])
    def test_extreme_supported_months(self, year, month):
        grid = month_grid([], year, month)

        assert grid.year == year
        assert all(len(week) == 7 for week in grid.weeks)


class TestDayDrillDown:
    def test_group_by_day_sorted(self, event_factory, base_time):
        late = event_factory(title="late", at=base_time.replace(hour=18))
        early = event_factory(title="early", at=base_time.replace(hour=7))
        grouped = group_by_day([late, early])

        assert [e.title for e in grouped[date(2024, 3, 4)]] == ["early", "late"]

    def test_day_events(self, sample_events):
        events = day_events(sample_events, date(2024, 3, 4))
        assert [e.title for e in events] == ["Goal created: Win regional", "Task created: Build base"]
        assert day_events(sample_events, date(2024, 3, 8)) == []

    def test_time_label(self, event_factory, base_time):
        assert event_time_label(event_factory(at=base_time)) == "09:00"

    def test_day_entries_carry_local_time(self, sample_events):
        entries = day_entries(sample_events, date(2024, 3, 4), ZoneInfo("America/Sao_Paulo"))

        assert [e.time for e in entries] == ["06:00", "07:00"]
        assert [e.event.title for e in entries] == ["Goal created: Win regional", "Task created: Build base"]

    def test_day_entries_empty_day(self, sample_events):
        assert day_entries(sample_events, date(2024, 3, 8)) == []


class TestShiftMonth:
    @pytest.mark.parametrize(
        "start, delta, expected",
        [
            ((2024, 12), 1, (2025, 1)),
            ((2024, 1), -1, (2023, 12)),
            ((2024, 3), -14, (2023, 1)),
            ((2024, 3), 0, (2024, 3)),
        ],
    )
    def test_shift(self, start, delta, expected):
        assert shift_month(*start, delta) == expected

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            shift_month(2024, 13, 1)
