"""
Event log endpoints - ingestion and raw reads.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request, Response, status

from teamhub.api.deps import CurrentMember, DbSession, Notifier, OptionalMember, get_client_ip
from teamhub.engines.timemachine.aggregation import EventIndex
from teamhub.kernel.events.event_store import EventStore
from teamhub.kernel.events.event_types import CreateEventParams
from teamhub.kernel.events.ingestion import EventAction, build_action_params, record_event
from teamhub.kernel.models.event_log import EventCategory, EventType
from teamhub.logging_config import get_logger
from teamhub.schemas.events import (
    ActionEventCreate,
    EventCountResponse,
    EventDetailResponse,
    EventListResponse,
    LogEventResponse,
)

logger = get_logger(__name__)

router = APIRouter()

REASON_NOT_AUTHENTICATED = "not_authenticated"
REASON_STORAGE_ERROR = "storage_error"


async def _ingest(
    request: Request,
    response: Response,
    db,
    member,
    notifier,
    params: CreateEventParams,
) -> LogEventResponse:
    if member is None:
        logger.info(
            "Anonymous ingestion attempt",
            extra={"client_ip": get_client_ip(request)},
        )
    record = await record_event(db, member, params, notifier)
    if record is None:
        response.status_code = status.HTTP_200_OK
        reason = REASON_NOT_AUTHENTICATED if member is None else REASON_STORAGE_ERROR
        return LogEventResponse(success=False, reason=reason)

    response.status_code = status.HTTP_201_CREATED
    return LogEventResponse(success=True, event_id=record.id)


@router.post("", response_model=LogEventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    request: Request,
    response: Response,
    params: CreateEventParams,
    member: OptionalMember,
    db: DbSession,
    notifier: Notifier,
):
    """
    Append one event on behalf of the current member.

    201 with the new id on success. A missing member or a storage failure is
    a soft failure: 200 with success=false and a reason.
    """
    return await _ingest(request, response, db, member, notifier, params)


@router.post("/actions/{action}", response_model=LogEventResponse, status_code=status.HTTP_201_CREATED)
async def create_action_event(
    request: Request,
    response: Response,
    action: str,
    body: ActionEventCreate,
    member: OptionalMember,
    db: DbSession,
    notifier: Notifier,
):
    """Log a common domain action (goal_created, test, upload, ...) by name."""
    try:
        event_action = EventAction(action)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown action '{action}'",
        )

    try:
        params = build_action_params(
            event_action,
            body.name,
            category=body.category,
            description=body.description,
            metadata=body.metadata,
            related_event_id=body.related_event_id,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    return await _ingest(request, response, db, member, notifier, params)


@router.get("", response_model=EventListResponse)
async def list_events(
    member: CurrentMember,
    db: DbSession,
    categories: Optional[List[EventCategory]] = Query(None),
    order: Literal["asc", "desc"] = "asc",
):
    """The full log, optionally narrowed to some categories."""
    events = await EventStore(db).query_all(categories, ascending=order == "asc")
    return EventListResponse(items=events, total=len(events))


@router.get("/count", response_model=EventCountResponse)
async def count_events(
    member: CurrentMember,
    db: DbSession,
    category: Optional[EventCategory] = None,
    event_type: Optional[EventType] = None,
    user_id: Optional[uuid.UUID] = None,
    since: Optional[datetime] = None,
):
    """Number of events matching every given filter."""
    count = await EventStore(db).count_events(
        category=category,
        event_type=event_type,
        user_id=user_id,
        since=since,
    )
    return EventCountResponse(count=count)


@router.get("/{event_id}", response_model=EventDetailResponse)
async def get_event(
    event_id: uuid.UUID,
    member: CurrentMember,
    db: DbSession,
):
    """
    One event, with the event it points at when that still exists.

    lineage follows related links further back (an iteration of an
    iteration of a prototype), nearest first.
    """
    store = EventStore(db)
    event = await store.get_event(event_id)
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Event not found",
        )

    if event.related_event_id is None:
        return EventDetailResponse(event=event)

    index = EventIndex(await store.query_all())
    return EventDetailResponse(
        event=event,
        related_event=index.resolve_related(event),
        lineage=index.lineage(event),
    )
