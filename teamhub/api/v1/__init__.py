"""
API v1 routes.
"""

from fastapi import APIRouter

from teamhub.api.v1 import events, timemachine, view_state
from teamhub.schemas.common import ErrorResponse

router = APIRouter()

# Reads of the log map store failures to 503
_store_errors = {503: {"model": ErrorResponse, "description": "Event log unavailable, retry"}}

router.include_router(events.router, prefix="/events", tags=["Events"], responses=_store_errors)
router.include_router(timemachine.router, prefix="/timemachine", tags=["Time Machine"], responses=_store_errors)
router.include_router(view_state.router, prefix="/view-state", tags=["View State"])
