"""
Event Store: the narrow interface to the append-only Time Machine log.

Only two things ever happen to the log: a row is appended, or the whole
log (optionally narrowed by category) is read back in created_at order.
Derived views are recomputed from that read; nothing is materialised.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub.kernel.events.event_types import CreateEventParams, EventRecord
from teamhub.kernel.models.event_log import EventCategory, EventType, TimeMachineEvent
from teamhub.kernel.models.member import Member


class EventStoreError(Exception):
    """The event log could not be read or written."""


class EventStore:
    """
    Service for reading and appending Time Machine events.

    Usage:
        store = EventStore(session)
        record = await store.append(
            CreateEventParams(
                event_type=EventType.COMPLETION,
                event_category=EventCategory.TASK,
                title="Task completed: wire the gripper",
            ),
            author=current_member,
        )
        events = await store.query_all()
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        params: CreateEventParams,
        author: Optional[Member] = None,
    ) -> EventRecord:
        """
        Append one immutable event.

        id and created_at are assigned here and by the database; the caller
        decides when to commit.

        Args:
            params: Validated event fields
            author: The acting member, None for system-generated events

        Returns:
            The stored event as an EventRecord

        Raises:
            EventStoreError: The insert failed
        """
        row = TimeMachineEvent(
            event_type=EventType(params.event_type).value,
            event_category=EventCategory(params.event_category).value,
            title=params.title,
            description=params.description or None,
            event_metadata=serialize_metadata(params.metadata or {}),
            user_id=author.id if author is not None else None,
            related_event_id=params.related_event_id,
            attachments=list(params.attachments or []),
        )

        try:
            self.session.add(row)
            await self.session.flush()
            # Load column defaults back onto the row
            await self.session.refresh(row)
        except SQLAlchemyError as exc:
            raise EventStoreError("Failed to append event") from exc

        return EventRecord.from_row(row, author)

    async def query_all(
        self,
        categories: Optional[Iterable[EventCategory]] = None,
        ascending: bool = True,
    ) -> List[EventRecord]:
        """
        Read the full log joined with member display fields.

        Args:
            categories: Optional category filter; empty or None means all
            ascending: Oldest first when True, newest first otherwise

        Returns:
            EventRecords ordered by created_at

        Raises:
            EventStoreError: The read failed
        """
        query = select(TimeMachineEvent, Member).outerjoin(
            Member, TimeMachineEvent.user_id == Member.id
        )

        wanted = [EventCategory(c).value for c in categories or []]
        if wanted:
            query = query.where(TimeMachineEvent.event_category.in_(wanted))

        if ascending:
            query = query.order_by(TimeMachineEvent.created_at.asc())
        else:
            query = query.order_by(TimeMachineEvent.created_at.desc())

        try:
            result = await self.session.execute(query)
            rows = result.all()
        except SQLAlchemyError as exc:
            raise EventStoreError("Failed to read event log") from exc

        return [EventRecord.from_row(event, member) for event, member in rows]

    async def get_event(self, event_id: uuid.UUID) -> Optional[EventRecord]:
        """Fetch a single event, or None if it does not exist."""
        query = select(TimeMachineEvent, Member).outerjoin(
            Member, TimeMachineEvent.user_id == Member.id
        ).where(TimeMachineEvent.id == event_id)

        try:
            result = await self.session.execute(query)
            row = result.one_or_none()
        except SQLAlchemyError as exc:
            raise EventStoreError("Failed to read event") from exc

        if row is None:
            return None
        event, member = row
        return EventRecord.from_row(event, member)

    async def count_events(
        self,
        category: Optional[EventCategory] = None,
        event_type: Optional[EventType] = None,
        user_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
    ) -> int:
        """
        Count events matching the given criteria.

        Args:
            category: Filter by event category
            event_type: Filter by event type
            user_id: Filter by acting member
            since: Start datetime filter

        Returns:
            Count of matching events
        """
        query = select(func.count(TimeMachineEvent.id))

        if category:
            query = query.where(TimeMachineEvent.event_category == EventCategory(category).value)
        if event_type:
            query = query.where(TimeMachineEvent.event_type == EventType(event_type).value)
        if user_id:
            query = query.where(TimeMachineEvent.user_id == user_id)
        if since:
            query = query.where(TimeMachineEvent.created_at >= since)

        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as exc:
            raise EventStoreError("Failed to count events") from exc
        return result.scalar() or 0


def serialize_metadata(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Convert metadata values to JSON-serializable types."""
    result = {}
    for key, value in payload.items():
        result[key] = _serialize_value(value)
    return result


def _serialize_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return serialize_metadata(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    return value
