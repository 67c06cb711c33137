"""
In-memory event shapes.

EventRecord is what the engines consume: a detached, immutable copy of a
log row with the acting member's display fields denormalised onto it.
CreateEventParams is what callers hand to the ingestion API.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from teamhub.kernel.models.event_log import EventCategory, EventType, TimeMachineEvent
from teamhub.kernel.models.member import Member


class EventAuthor(BaseModel):
    """Display fields of the member who produced an event."""

    model_config = ConfigDict(frozen=True)

    full_name: str
    avatar_url: Optional[str] = None


class EventRecord(BaseModel):
    """Read-side view of one TimeMachineEvent."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    event_type: EventType
    event_category: EventCategory
    title: str
    description: Optional[str] = None
    # Open-ended JSON; not guaranteed to be a dict
    metadata: Any = Field(default_factory=dict)
    user_id: Optional[uuid.UUID] = None
    related_event_id: Optional[uuid.UUID] = None
    attachments: List[Any] = Field(default_factory=list)
    created_at: datetime
    user: Optional[EventAuthor] = None

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # SQLite hands back naive timestamps; the store writes UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @field_validator("attachments", mode="before")
    @classmethod
    def _coerce_attachments(cls, value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]

    @classmethod
    def from_row(
        cls,
        row: TimeMachineEvent,
        author: Optional[Member] = None,
    ) -> "EventRecord":
        """Build a record from an ORM row and (optionally) its member."""
        return cls(
            id=row.id,
            event_type=row.event_type,
            event_category=row.event_category,
            title=row.title,
            description=row.description,
            metadata=row.event_metadata if row.event_metadata is not None else {},
            user_id=row.user_id,
            related_event_id=row.related_event_id,
            attachments=row.attachments,
            created_at=row.created_at,
            user=EventAuthor(full_name=author.full_name, avatar_url=author.avatar_url)
            if author is not None else None,
        )

    def metadata_value(self, key: str, default: Any = None) -> Any:
        """Read a metadata field without trusting the shape of metadata."""
        if not isinstance(self.metadata, dict):
            return default
        return self.metadata.get(key, default)


class CreateEventParams(BaseModel):
    """Input to log_event."""

    model_config = ConfigDict(str_strip_whitespace=True)

    event_type: EventType
    event_category: EventCategory
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    related_event_id: Optional[uuid.UUID] = None
    attachments: Optional[List[Any]] = None


class ChangeNotice(BaseModel):
    """Push notification that the event log changed. Triggers a refetch."""

    model_config = ConfigDict(frozen=True)

    table: str = TimeMachineEvent.__tablename__
    operation: str = "insert"  # insert, update, delete
    event_id: Optional[uuid.UUID] = None
