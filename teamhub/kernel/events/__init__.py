"""
Event log infrastructure.

Append-only storage, the ingestion API and change notifications for the
Time Machine.
"""

from teamhub.kernel.events.event_store import EventStore, EventStoreError
from teamhub.kernel.events.event_types import (
    ChangeNotice,
    CreateEventParams,
    EventAuthor,
    EventRecord,
)
from teamhub.kernel.events.notifier import ChangeNotifier, get_change_notifier
from teamhub.kernel.events.ingestion import (
    ACTION_PRESETS,
    EventAction,
    build_action_params,
    format_action_title,
    log_event,
    record_event,
)

__all__ = [
    "EventStore",
    "EventStoreError",
    "ChangeNotice",
    "CreateEventParams",
    "EventAuthor",
    "EventRecord",
    "ChangeNotifier",
    "get_change_notifier",
    "ACTION_PRESETS",
    "EventAction",
    "build_action_params",
    "format_action_title",
    "log_event",
    "record_event",
]
