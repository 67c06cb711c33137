"""
Time Machine endpoints - heatmaps, member activity, evolution, reports,
calendar and replay.

Every view is recomputed from a fresh read of the log; there is no cache to
invalidate.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub.api.deps import CurrentMember, DbSession, ViewerTimezone, parse_timezone
from teamhub.config import get_settings
from teamhub.database import session_scope
from teamhub.engines.timemachine.aggregation import (
    TimeMachineOverview,
    build_overview,
    filter_by_categories,
    member_rollup,
)
from teamhub.engines.timemachine.calendar import (
    MAX_YEAR,
    MIN_YEAR,
    CalendarMonth,
    day_entries,
    month_grid,
)
from teamhub.engines.timemachine.evolution import evolution_stats, extract_evolution
from teamhub.engines.timemachine.replay import ReplayFrame, ReplaySession, SnapshotFollower
from teamhub.engines.timemachine.reports import (
    EXPORT_MEDIA_TYPE,
    ReportKind,
    build_report,
    build_reports,
    export_filename,
    render_report,
)
from teamhub.kernel.events.event_store import EventStore, EventStoreError
from teamhub.kernel.events.event_types import EventRecord
from teamhub.kernel.events.notifier import get_change_notifier
from teamhub.kernel.identity.jwt import verify_access_token
from teamhub.kernel.models.event_log import EventCategory
from teamhub.kernel.models.member import Member
from teamhub.logging_config import get_logger, member_id_var
from teamhub.schemas.timemachine import (
    CalendarDayResponse,
    EvolutionResponse,
    EvolutionStatsResponse,
    MemberActivityResponse,
    ReportListResponse,
)

logger = get_logger(__name__)

router = APIRouter()

CategoriesQuery = Query(None, description="Only include these categories")

# WebSocket close code for a rejected token (4000-4999 is application space)
WS_UNAUTHORIZED = 4401


async def _load_events(db: AsyncSession) -> List[EventRecord]:
    return await EventStore(db).query_all()


@router.get("/overview", response_model=TimeMachineOverview)
async def get_overview(
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
    categories: Optional[List[EventCategory]] = CategoriesQuery,
):
    """Heatmaps, rankings and category distribution for the selected categories."""
    settings = get_settings()
    events = await _load_events(db)
    return build_overview(
        events,
        categories,
        tz,
        contributors_limit=settings.top_contributors_limit,
        peak_weeks_limit=settings.peak_weeks_limit,
        top_active_limit=settings.top_active_limit,
        recent_limit=settings.recent_events_limit,
    )


@router.get("/members", response_model=MemberActivityResponse)
async def get_member_activity(
    member: CurrentMember,
    db: DbSession,
    categories: Optional[List[EventCategory]] = CategoriesQuery,
):
    """Per-member rollups, most active first."""
    events = filter_by_categories(await _load_events(db), categories)
    return MemberActivityResponse(
        members=member_rollup(events),
        total_events=len(events),
    )


@router.get("/evolution", response_model=EvolutionResponse)
async def get_evolution(
    member: CurrentMember,
    db: DbSession,
):
    events = await _load_events(db)
    stats = evolution_stats(events)
    return EvolutionResponse(
        steps=extract_evolution(events),
        stats=EvolutionStatsResponse(
            iterations=stats.iterations,
            tests=stats.tests,
            prototypes=stats.prototypes,
            feedbacks=stats.feedbacks,
        ),
    )


@router.get("/reports", response_model=ReportListResponse)
async def list_reports(
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
):
    return ReportListResponse(reports=build_reports(await _load_events(db), tz))


@router.get("/reports/{kind}/export", response_class=PlainTextResponse)
async def export_report(
    kind: str,
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
):
    """Render one report as a text file download."""
    try:
        report_kind = ReportKind(kind)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown report '{kind}'",
        )

    definition = build_report(report_kind, await _load_events(db), tz)
    generated_at = datetime.now(timezone.utc)
    filename = export_filename(definition, generated_at.astimezone(tz).date())

    logger.info("Report exported", extra={"report": report_kind.value})
    return PlainTextResponse(
        content=render_report(definition, generated_at, tz),
        media_type=EXPORT_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/calendar", response_model=CalendarMonth)
async def get_calendar(
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
    year: Optional[int] = Query(None, ge=MIN_YEAR, le=MAX_YEAR),
    month: Optional[int] = Query(None, ge=1, le=12),
    categories: Optional[List[EventCategory]] = CategoriesQuery,
):
    """Month grid; defaults to the current month in the viewer's zone."""
    today = datetime.now(tz).date()
    events = filter_by_categories(await _load_events(db), categories)
    return month_grid(
        events,
        year or today.year,
        month or today.month,
        tz,
        max_indicators=get_settings().calendar_max_indicators,
    )


@router.get("/calendar/day", response_model=CalendarDayResponse)
async def get_calendar_day(
    day: date,
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
    categories: Optional[List[EventCategory]] = CategoriesQuery,
):
    events = filter_by_categories(await _load_events(db), categories)
    return CalendarDayResponse(date=day, entries=day_entries(events, day, tz))


def _new_session(events: List[EventRecord], tz, speed: float = 1.0, on_change=None) -> ReplaySession:
    settings = get_settings()
    return ReplaySession(
        events,
        base_interval=settings.replay_base_interval_seconds,
        speed=speed,
        tz=tz,
        on_change=on_change,
        min_speed=settings.replay_min_speed,
        max_speed=settings.replay_max_speed,
    )


@router.get("/replay/frame", response_model=ReplayFrame)
async def get_replay_frame(
    member: CurrentMember,
    db: DbSession,
    tz: ViewerTimezone,
    cursor: Optional[int] = Query(None, ge=0),
    speed: float = Query(1.0, gt=0),
    history_limit: Optional[int] = Query(None, ge=0),
):
    """
    Stateless replay: the frame a player would show at `cursor`.

    Without a cursor the frame is the initial stopped one.
    """
    replay = _new_session(await _load_events(db), tz, speed)
    if cursor is not None:
        replay.seek(cursor)
    return replay.frame(history_limit)


# Live replay

async def _authenticate_websocket(websocket: WebSocket) -> Optional[Member]:
    token = websocket.query_params.get("token")
    if not token:
        header = websocket.headers.get("authorization", "")
        if header.lower().startswith("bearer "):
            token = header[7:].strip()
    if not token:
        return None

    payload = verify_access_token(token)
    if payload is None or payload.member_id is None:
        return None
    async with session_scope() as session:
        member = await session.get(Member, payload.member_id)
    if member is None or not member.is_active:
        return None
    return member


async def _fetch_snapshot() -> List[EventRecord]:
    async with session_scope() as session:
        return await EventStore(session).query_all()


def _frame_message(frame: ReplayFrame) -> Dict[str, Any]:
    return {"type": "frame", "frame": frame.model_dump(mode="json")}


def _apply_command(replay: ReplaySession, message: Dict[str, Any]) -> Optional[str]:
    """Run one client command; returns an error message for bad input."""
    action = message.get("action")
    if action == "play":
        replay.play()
    elif action == "pause":
        replay.pause()
    elif action == "reset":
        replay.reset()
    elif action == "skip_to_end":
        replay.skip_to_end()
    elif action == "seek":
        index = message.get("index")
        if isinstance(index, bool) or not isinstance(index, int):
            return "seek requires an integer 'index'"
        replay.seek(index)
    elif action == "speed":
        value = message.get("value")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return "speed requires a numeric 'value'"
        try:
            replay.set_speed(value)
        except ValueError as exc:
            return str(exc)
    else:
        return f"Unknown action '{action}'"
    return None


@router.websocket("/replay/ws")
async def replay_socket(websocket: WebSocket):
    """
    Live replay for one viewer.

    Client messages: {"action": "play" | "pause" | "reset" | "skip_to_end"},
    {"action": "seek", "index": n}, {"action": "speed", "value": x}.
    Server messages: {"type": "frame", "frame": {...}} after every change,
    {"type": "error", "detail": "..."} for rejected commands.

    A change to the event log triggers a full refetch; the player keeps its
    position. The timer is cancelled when the socket closes.
    """
    await websocket.accept()

    member = await _authenticate_websocket(websocket)
    if member is None:
        await websocket.close(code=WS_UNAUTHORIZED)
        return
    member_id_var.set(str(member.id))

    try:
        tz = parse_timezone(websocket.query_params.get("tz"))
    except HTTPException as exc:
        await websocket.send_json({"type": "error", "detail": exc.detail})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    outbox: "asyncio.Queue[ReplayFrame]" = asyncio.Queue()
    try:
        events = await _fetch_snapshot()
    except EventStoreError:
        logger.exception("Replay could not load the event log")
        await websocket.send_json({"type": "error", "detail": "Event log unavailable", "retryable": True})
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return

    replay = _new_session(events, tz, on_change=outbox.put_nowait)
    follower = SnapshotFollower(replay, _fetch_snapshot)

    async def pump() -> None:
        while True:
            frame = await outbox.get()
            await websocket.send_json(_frame_message(frame))

    follower.start()
    unsubscribe = get_change_notifier().subscribe(follower.invalidate)
    sender = asyncio.create_task(pump())
    logger.info("Replay session opened", extra={"events": len(events)})

    try:
        await websocket.send_json(_frame_message(replay.frame()))
        while True:
            message = await websocket.receive_json()
            error = _apply_command(replay, message if isinstance(message, dict) else {})
            if error is not None:
                await websocket.send_json({"type": "error", "detail": error})
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        await follower.close()
        await replay.close()
        sender.cancel()
        try:
            await sender
        except (asyncio.CancelledError, WebSocketDisconnect, RuntimeError):
            pass
        logger.info("Replay session closed")
