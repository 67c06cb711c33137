"""
View-state snapshots.

Remembers per-member UI state (which tab is open, how far a list was
scrolled, which modal was open with what draft) keyed by (route, widget id).
Persistence is behind StoragePort so the same store runs against the
database in production and a dict in tests.
"""

import uuid
from typing import Any, Dict, Literal, Optional, Protocol

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub.kernel.models.view_state import ViewStateEntry
from teamhub.logging_config import get_logger

logger = get_logger(__name__)

KEY_SEPARATOR = "::"
TAB_WIDGET = "tab"
SCROLL_WIDGET = "scroll"


class StoragePort(Protocol):
    """Minimal key/value persistence used by ViewStateStore."""

    async def get(self, key: str) -> Optional[Any]: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def clear(self, key: str) -> None: ...


class InMemoryStorage:
    """Dict-backed StoragePort."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    async def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def clear(self, key: str) -> None:
        self._data.pop(key, None)


class DatabaseStorage:
    """StoragePort over the view_state_entries table, scoped to one member."""

    def __init__(self, session: AsyncSession, member_id: uuid.UUID):
        self.session = session
        self.member_id = member_id

    async def _entry(self, key: str) -> Optional[ViewStateEntry]:
        result = await self.session.execute(
            select(ViewStateEntry).where(
                ViewStateEntry.member_id == self.member_id,
                ViewStateEntry.key == key,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, key: str) -> Optional[Any]:
        entry = await self._entry(key)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any) -> None:
        entry = await self._entry(key)
        if entry is None:
            self.session.add(ViewStateEntry(member_id=self.member_id, key=key, value=value))
        else:
            entry.value = value
        await self.session.flush()

    async def clear(self, key: str) -> None:
        await self.session.execute(
            delete(ViewStateEntry).where(
                ViewStateEntry.member_id == self.member_id,
                ViewStateEntry.key == key,
            )
        )


class ModalState(BaseModel):
    """Open/closed modal plus any unsaved form draft."""

    is_open: bool = False
    modal_type: Optional[Literal["create", "edit", "view"]] = None
    item_id: Optional[str] = None
    form_data: Optional[Dict[str, Any]] = None


def snapshot_key(route: str, widget_id: str) -> str:
    """
    Storage key for one widget on one route.

    Raises:
        ValueError: Either part contains the key separator
    """
    if KEY_SEPARATOR in route or KEY_SEPARATOR in widget_id:
        raise ValueError(f"route and widget_id must not contain '{KEY_SEPARATOR}'")
    return f"{route}{KEY_SEPARATOR}{widget_id}"


class ViewStateStore:
    """Typed access to view-state snapshots."""

    def __init__(self, storage: StoragePort):
        self.storage = storage

    async def load(self, route: str, widget_id: str, default: Any = None) -> Any:
        value = await self.storage.get(snapshot_key(route, widget_id))
        return default if value is None else value

    async def save(self, route: str, widget_id: str, value: Any) -> None:
        await self.storage.set(snapshot_key(route, widget_id), value)

    async def clear(self, route: str, widget_id: str) -> None:
        await self.storage.clear(snapshot_key(route, widget_id))

    # Tabs

    async def get_tab(self, route: str, default: str) -> str:
        value = await self.load(route, TAB_WIDGET)
        return value if isinstance(value, str) and value else default

    async def set_tab(self, route: str, tab: str) -> None:
        await self.save(route, TAB_WIDGET, tab)

    # Scroll

    @staticmethod
    def _scroll_widget(tab_id: Optional[str]) -> str:
        return f"{SCROLL_WIDGET}:{tab_id}" if tab_id else SCROLL_WIDGET

    async def get_scroll(self, route: str, tab_id: Optional[str] = None) -> int:
        value = await self.load(route, self._scroll_widget(tab_id))
        # bool is an int subclass; a stored True is not a scroll offset
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return 0
        return max(0, int(value))

    async def set_scroll(self, route: str, position: int, tab_id: Optional[str] = None) -> None:
        await self.save(route, self._scroll_widget(tab_id), max(0, int(position)))

    # Modals

    async def get_modal(self, route: str, widget_id: str) -> ModalState:
        raw = await self.load(route, widget_id)
        if raw is None:
            return ModalState()
        try:
            return ModalState.model_validate(raw)
        except ValidationError:
            logger.warning(
                "Discarding corrupt modal state",
                extra={"route": route, "widget_id": widget_id},
            )
            return ModalState()

    async def open_modal(
        self,
        route: str,
        widget_id: str,
        modal_type: Literal["create", "edit", "view"],
        item_id: Optional[str] = None,
        form_data: Optional[Dict[str, Any]] = None,
    ) -> ModalState:
        state = ModalState(is_open=True, modal_type=modal_type, item_id=item_id, form_data=form_data)
        await self.save(route, widget_id, state.model_dump())
        return state

    async def close_modal(self, route: str, widget_id: str) -> ModalState:
        state = ModalState()
        await self.save(route, widget_id, state.model_dump())
        return state

    async def update_form_data(self, route: str, widget_id: str, form_data: Dict[str, Any]) -> ModalState:
        current = await self.get_modal(route, widget_id)
        state = current.model_copy(update={"form_data": form_data})
        await self.save(route, widget_id, state.model_dump())
        return state

    async def clear_modal(self, route: str, widget_id: str) -> ModalState:
        await self.clear(route, widget_id)
        return ModalState()
