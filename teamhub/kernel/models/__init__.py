"""
Kernel Data Models

SQLAlchemy models for the event log, team members and view state.
"""

from teamhub.kernel.models.base import Base, TimestampMixin, generate_uuid
from teamhub.kernel.models.member import Member
from teamhub.kernel.models.event_log import EventCategory, EventType, TimeMachineEvent
from teamhub.kernel.models.view_state import ViewStateEntry

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    # Members
    "Member",
    # Event Log
    "TimeMachineEvent",
    "EventType",
    "EventCategory",
    # View state
    "ViewStateEntry",
]
