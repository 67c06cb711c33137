"""
Pydantic schemas for API request/response validation.
"""

from teamhub.schemas.common import (
    ErrorResponse,
    HealthResponse,
)
from teamhub.schemas.events import (
    ActionEventCreate,
    EventCountResponse,
    EventDetailResponse,
    EventListResponse,
    LogEventResponse,
)
from teamhub.schemas.timemachine import (
    CalendarDayResponse,
    EvolutionResponse,
    EvolutionStatsResponse,
    MemberActivityResponse,
    ReportListResponse,
)
from teamhub.schemas.view_state import ViewStateUpdate, ViewStateValue

__all__ = [
    # Common
    "ErrorResponse",
    "HealthResponse",
    # Events
    "ActionEventCreate",
    "EventCountResponse",
    "EventDetailResponse",
    "EventListResponse",
    "LogEventResponse",
    # Time Machine
    "CalendarDayResponse",
    "EvolutionResponse",
    "EvolutionStatsResponse",
    "MemberActivityResponse",
    "ReportListResponse",
    # View state
    "ViewStateUpdate",
    "ViewStateValue",
]
