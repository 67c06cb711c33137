"""
Event Ingestion API.

log_event is the single write path into the Time Machine. Every feature
area calls it (directly or through one of the per-action wrappers below)
when a member does something worth remembering.

Failures are soft: an unauthenticated caller or a storage error is logged
and reported as False, never raised into the caller. There is no retry.
"""

import uuid
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub.kernel.events.event_store import EventStore, EventStoreError
from teamhub.kernel.events.event_types import ChangeNotice, CreateEventParams, EventRecord
from teamhub.kernel.events.notifier import ChangeNotifier, get_change_notifier
from teamhub.kernel.models.event_log import EventCategory, EventType
from teamhub.kernel.models.member import Member
from teamhub.logging_config import get_logger

logger = get_logger(__name__)


async def record_event(
    session: AsyncSession,
    member: Optional[Member],
    params: CreateEventParams,
    notifier: Optional[ChangeNotifier] = None,
) -> Optional[EventRecord]:
    """
    Append and commit one event on behalf of a member.

    Returns:
        The stored EventRecord, or None on a soft failure
    """
    if member is None:
        logger.warning(
            "Time Machine: member not authenticated, event dropped",
            extra={"event_category": params.event_category.value},
        )
        return None

    store = EventStore(session)
    try:
        record = await store.append(params, author=member)
        await session.commit()
    except (EventStoreError, SQLAlchemyError):
        logger.exception(
            "Failed to record Time Machine event",
            extra={
                "event_type": params.event_type.value,
                "event_category": params.event_category.value,
            },
        )
        await session.rollback()
        return None

    logger.info(
        "Time Machine event recorded",
        extra={"event_id": str(record.id), "event_category": record.event_category.value},
    )
    await (notifier or get_change_notifier()).publish(
        ChangeNotice(operation="insert", event_id=record.id)
    )
    return record


async def log_event(
    session: AsyncSession,
    member: Optional[Member],
    params: CreateEventParams,
    notifier: Optional[ChangeNotifier] = None,
) -> bool:
    """
    Log an event to the Time Machine.

    Args:
        session: Database session
        member: The authenticated member, or None
        params: Event fields
        notifier: Override for the change notifier (tests)

    Returns:
        True if exactly one event was appended and committed
    """
    return await record_event(session, member, params, notifier) is not None


# Per-action wrappers

class EventAction(str, Enum):
    """Common domain actions with a fixed type, category and title prefix."""

    GOAL_CREATED = "goal_created"
    GOAL_COMPLETED = "goal_completed"
    GOAL_EDITED = "goal_edited"
    TASK_CREATED = "task_created"
    TASK_COMPLETED = "task_completed"
    EVIDENCE_CREATED = "evidence_created"
    UPLOAD = "upload"
    BRAINSTORMING = "brainstorming"
    PROTOTYPE = "prototype"
    TEST = "test"
    FEEDBACK = "feedback"
    ITERATION = "iteration"
    DECISION = "decision"
    MEETING = "meeting"
    TIMELINE_CHANGE = "timeline_change"
    METHODOLOGY = "methodology"
    INNOVATION = "innovation"
    ROBOT = "robot"


class ActionPreset(NamedTuple):
    event_type: EventType
    # None: the caller chooses (uploads can land in any area)
    event_category: Optional[EventCategory]
    title_prefix: str


ACTION_PRESETS: Dict[EventAction, ActionPreset] = {
    EventAction.GOAL_CREATED: ActionPreset(EventType.CREATION, EventCategory.GOAL, "Goal created"),
    EventAction.GOAL_COMPLETED: ActionPreset(EventType.COMPLETION, EventCategory.GOAL, "Goal completed"),
    EventAction.GOAL_EDITED: ActionPreset(EventType.EDIT, EventCategory.GOAL, "Goal edited"),
    EventAction.TASK_CREATED: ActionPreset(EventType.CREATION, EventCategory.TASK, "Task created"),
    EventAction.TASK_COMPLETED: ActionPreset(EventType.COMPLETION, EventCategory.TASK, "Task completed"),
    EventAction.EVIDENCE_CREATED: ActionPreset(EventType.CREATION, EventCategory.EVIDENCE, "Evidence recorded"),
    EventAction.UPLOAD: ActionPreset(EventType.UPLOAD, None, "File attached"),
    EventAction.BRAINSTORMING: ActionPreset(EventType.CREATION, EventCategory.BRAINSTORMING, "Brainstorming"),
    EventAction.PROTOTYPE: ActionPreset(EventType.CREATION, EventCategory.PROTOTYPE, "Prototype"),
    EventAction.TEST: ActionPreset(EventType.CREATION, EventCategory.TEST, "Test run"),
    EventAction.FEEDBACK: ActionPreset(EventType.CREATION, EventCategory.FEEDBACK, "Feedback"),
    EventAction.ITERATION: ActionPreset(EventType.ITERATION, EventCategory.ITERATION, "Iteration"),
    EventAction.DECISION: ActionPreset(EventType.CREATION, EventCategory.DECISION, "Decision"),
    EventAction.MEETING: ActionPreset(EventType.CREATION, EventCategory.MEETING, "Meeting"),
    EventAction.TIMELINE_CHANGE: ActionPreset(EventType.EDIT, EventCategory.TIMELINE, "Timeline"),
    EventAction.METHODOLOGY: ActionPreset(EventType.CREATION, EventCategory.METHODOLOGY, "Methodology"),
    EventAction.INNOVATION: ActionPreset(EventType.EDIT, EventCategory.INNOVATION, "Innovation project"),
    EventAction.ROBOT: ActionPreset(EventType.EDIT, EventCategory.ROBOT, "Robot"),
}


def format_action_title(action: EventAction, name: str) -> str:
    """Deterministic title for an action, e.g. "Task completed: Wire gripper"."""
    preset = ACTION_PRESETS[EventAction(action)]
    return f"{preset.title_prefix}: {name.strip()}"


def build_action_params(
    action: EventAction,
    name: str,
    category: Optional[EventCategory] = None,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    related_event_id: Optional[uuid.UUID] = None,
) -> CreateEventParams:
    """
    Build the CreateEventParams a wrapper would send.

    Raises:
        ValueError: Upload without a category, or a category override on an
            action that fixes its own
    """
    preset = ACTION_PRESETS[EventAction(action)]
    if preset.event_category is None:
        if category is None:
            raise ValueError(f"Action '{action.value}' requires a category")
        event_category = category
    else:
        if category is not None and category != preset.event_category:
            raise ValueError(
                f"Action '{action.value}' always uses category '{preset.event_category.value}'"
            )
        event_category = preset.event_category

    return CreateEventParams(
        event_type=preset.event_type,
        event_category=event_category,
        title=format_action_title(action, name),
        description=description,
        metadata=metadata,
        related_event_id=related_event_id,
    )


async def _log_action(
    session: AsyncSession,
    member: Optional[Member],
    action: EventAction,
    name: str,
    metadata: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> bool:
    params = build_action_params(action, name, metadata=metadata, **kwargs)
    return await log_event(session, member, params)


async def log_goal_created(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.GOAL_CREATED, title, metadata)


async def log_goal_completed(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.GOAL_COMPLETED, title, metadata)


async def log_goal_edited(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.GOAL_EDITED, title, metadata)


async def log_task_created(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.TASK_CREATED, title, metadata)


async def log_task_completed(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.TASK_COMPLETED, title, metadata)


async def log_evidence_created(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.EVIDENCE_CREATED, title, metadata)


async def log_upload(
    session,
    member,
    file_name: str,
    category: EventCategory,
    metadata=None,
) -> bool:
    """Log a file attachment in whichever area it was uploaded to."""
    return await _log_action(
        session, member, EventAction.UPLOAD, file_name, metadata, category=category
    )


async def log_brainstorming(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.BRAINSTORMING, title, metadata)


async def log_prototype(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.PROTOTYPE, title, metadata)


async def log_test(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.TEST, title, metadata)


async def log_feedback(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.FEEDBACK, title, metadata)


async def log_iteration(
    session,
    member,
    title: str,
    related_event_id: Optional[uuid.UUID] = None,
    metadata=None,
) -> bool:
    """Log an iteration, optionally pointing back at the event it iterates on."""
    return await _log_action(
        session, member, EventAction.ITERATION, title, metadata,
        related_event_id=related_event_id,
    )


async def log_decision(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.DECISION, title, metadata)


async def log_meeting(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.MEETING, title, metadata)


async def log_timeline_change(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.TIMELINE_CHANGE, title, metadata)


async def log_methodology(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.METHODOLOGY, title, metadata)


async def log_innovation(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.INNOVATION, title, metadata)


async def log_robot(session, member, title: str, metadata=None) -> bool:
    return await _log_action(session, member, EventAction.ROBOT, title, metadata)
