"""
Event log request/response schemas.
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.models.event_log import EventCategory


class ActionEventCreate(BaseModel):
    """Body for POST /events/actions/{action}."""

    model_config = ConfigDict(str_strip_whitespace=True)

    # Goal/task/file name; becomes "<prefix>: <name>"
    name: str = Field(..., min_length=1, max_length=450)
    category: Optional[EventCategory] = None
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    related_event_id: Optional[uuid.UUID] = None


class LogEventResponse(BaseModel):
    """Result of an ingestion call. Failures are reported, not raised."""

    success: bool
    event_id: Optional[uuid.UUID] = None
    reason: Optional[str] = None


class EventListResponse(BaseModel):
    items: List[EventRecord]
    total: int


class EventCountResponse(BaseModel):
    count: int


class EventDetailResponse(BaseModel):
    event: EventRecord
    # None when the reference dangles or is unset
    related_event: Optional[EventRecord] = None
    lineage: List[EventRecord] = []
