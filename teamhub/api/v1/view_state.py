"""
View-state endpoints - per-member UI snapshots (tabs, scroll, modals).
"""

from typing import Annotated, Tuple

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from teamhub.api.deps import CurrentMember, DbSession
from teamhub.kernel.view_state import DatabaseStorage, ModalState, ViewStateStore, snapshot_key
from teamhub.schemas.view_state import ViewStateUpdate, ViewStateValue

router = APIRouter()


def view_key(
    route: str = Query(..., min_length=1, max_length=250),
    widget_id: str = Query(..., min_length=1, max_length=200),
) -> Tuple[str, str]:
    """(route, widget_id) from the query string; 422 if either holds the key separator."""
    try:
        snapshot_key(route, widget_id)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    return route, widget_id


ViewKey = Annotated[Tuple[str, str], Depends(view_key)]


def _store(db, member) -> ViewStateStore:
    return ViewStateStore(DatabaseStorage(db, member.id))


@router.get("", response_model=ViewStateValue)
async def get_view_state(
    key: ViewKey,
    member: CurrentMember,
    db: DbSession,
):
    """Stored snapshot for one widget; value is null when nothing is saved."""
    route, widget_id = key
    value = await _store(db, member).load(route, widget_id)
    return ViewStateValue(route=route, widget_id=widget_id, value=value)


@router.put("", response_model=ViewStateValue)
async def put_view_state(
    body: ViewStateUpdate,
    key: ViewKey,
    member: CurrentMember,
    db: DbSession,
):
    route, widget_id = key
    await _store(db, member).save(route, widget_id, body.value)
    return ViewStateValue(route=route, widget_id=widget_id, value=body.value)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_view_state(
    key: ViewKey,
    member: CurrentMember,
    db: DbSession,
):
    await _store(db, member).clear(*key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/modal", response_model=ModalState)
async def get_modal_state(
    key: ViewKey,
    member: CurrentMember,
    db: DbSession,
):
    """Modal snapshot; a corrupt stored value reads as a closed modal."""
    return await _store(db, member).get_modal(*key)
