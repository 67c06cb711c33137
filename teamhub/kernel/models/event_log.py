"""
Immutable Time Machine event log.

Every feature area records domain activity here (goal completed, prototype
built, test failed...). The table is append-only: a new fact is a new row,
past rows are never updated or deleted.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from teamhub.kernel.models.base import Base, generate_uuid, utcnow


class EventType(str, Enum):
    """The action an event describes."""

    CREATION = "creation"
    EDIT = "edit"
    COMPLETION = "completion"
    DELETION = "deletion"
    UPLOAD = "upload"
    COMMENT = "comment"
    ITERATION = "iteration"


class EventCategory(str, Enum):
    """The domain area an event belongs to."""

    GOAL = "goal"
    TASK = "task"
    EVIDENCE = "evidence"
    BRAINSTORMING = "brainstorming"
    MEETING = "meeting"
    DECISION = "decision"
    PROTOTYPE = "prototype"
    TEST = "test"
    FEEDBACK = "feedback"
    ITERATION = "iteration"
    COMMENT = "comment"
    SCHEDULE = "schedule"
    TIMELINE = "timeline"
    METHODOLOGY = "methodology"
    INNOVATION = "innovation"
    ROBOT = "robot"


class TimeMachineEvent(Base):
    """
    One immutable entry of the team history.

    created_at is assigned on insert, never taken from the caller, so client
    clock skew never affects ordering; it is the only ordering key.
    """

    __tablename__ = "time_machine_events"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    event_type: Mapped[EventType] = mapped_column(
        String(50),
        nullable=False,
    )
    event_category: Mapped[EventCategory] = mapped_column(
        String(50),
        nullable=False,
    )

    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict] = mapped_column(
        "metadata",
        JSON,
        nullable=False,
        default=dict,
    )

    # Actor; system-generated events have none
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    # Lookup key only: no foreign key, no cascade, may dangle
    related_event_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    attachments: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_time_machine_events_user_time", "user_id", "created_at"),
        Index("ix_time_machine_events_category_time", "event_category", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<TimeMachineEvent {self.event_category}:{self.event_type} {self.title!r}>"
