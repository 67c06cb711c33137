"""
Change notifications for the event log.

Subscribers receive a generic "something changed" notice and are expected to
refetch the whole log; the notice payload is informational only.
"""

from typing import Awaitable, Callable, List, Optional, Union

from teamhub.kernel.events.event_types import ChangeNotice
from teamhub.logging_config import get_logger

logger = get_logger(__name__)

ChangeCallback = Callable[[ChangeNotice], Union[None, Awaitable[None]]]


class ChangeNotifier:
    """In-process fan-out of log change notices."""

    def __init__(self) -> None:
        self._subscribers: List[ChangeCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the subscription (safe to call twice)
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def publish(self, notice: ChangeNotice) -> None:
        """Deliver a notice to every subscriber; one failure does not stop the rest."""
        for callback in list(self._subscribers):
            try:
                outcome = callback(notice)
                if outcome is not None:
                    await outcome
            except Exception:
                logger.exception(
                    "Change subscriber failed",
                    extra={"operation": notice.operation},
                )


_notifier: Optional[ChangeNotifier] = None


def get_change_notifier() -> ChangeNotifier:
    """Get or create the process-wide notifier."""
    global _notifier
    if _notifier is None:
        _notifier = ChangeNotifier()
    return _notifier
