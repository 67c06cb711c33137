"""
Time Machine view schemas.
"""

from datetime import date
from typing import List

from pydantic import BaseModel

from teamhub.engines.timemachine.aggregation import MemberRollup
from teamhub.engines.timemachine.calendar import CalendarDayEntry
from teamhub.engines.timemachine.evolution import EvolutionStep
from teamhub.engines.timemachine.reports import ReportDefinition


class MemberActivityResponse(BaseModel):
    members: List[MemberRollup]
    total_events: int


class EvolutionStatsResponse(BaseModel):
    iterations: int
    tests: int
    prototypes: int
    feedbacks: int


class EvolutionResponse(BaseModel):
    steps: List[EvolutionStep]
    stats: EvolutionStatsResponse


class ReportListResponse(BaseModel):
    reports: List[ReportDefinition]


class CalendarDayResponse(BaseModel):
    date: date
    entries: List[CalendarDayEntry]

