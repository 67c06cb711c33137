"""
FastAPI dependencies for authentication, database sessions and viewer settings.
"""

from typing import Annotated, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from teamhub.config import get_settings
from teamhub.database import get_db
from teamhub.kernel.events.notifier import ChangeNotifier, get_change_notifier
from teamhub.kernel.identity.jwt import verify_access_token
from teamhub.kernel.models.member import Member
from teamhub.logging_config import member_id_var


# Security scheme
security = HTTPBearer(auto_error=False)

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def _member_from_token(db: AsyncSession, token: str) -> Optional[Member]:
    payload = verify_access_token(token)
    if payload is None or payload.member_id is None:
        return None
    member = await db.get(Member, payload.member_id)
    if member is None or not member.is_active:
        return None
    member_id_var.set(str(member.id))
    return member


async def get_current_member_optional(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> Optional[Member]:
    """Get the current member if authenticated, None otherwise."""
    if not credentials:
        return None
    return await _member_from_token(db, credentials.credentials)


async def get_current_member(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
) -> Member:
    """Get the current authenticated member or raise 401."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    member = await _member_from_token(db, credentials.credentials)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return member


CurrentMember = Annotated[Member, Depends(get_current_member)]
OptionalMember = Annotated[Optional[Member], Depends(get_current_member_optional)]


def parse_timezone(name: Optional[str]) -> ZoneInfo:
    """
    Resolve an IANA zone name, falling back to the configured default.

    Raises:
        HTTPException: 422 for an unknown zone
    """
    zone_name = name or get_settings().default_timezone
    try:
        return ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown time zone '{zone_name}'",
        )


def resolve_timezone(
    tz: Annotated[Optional[str], Query(description="IANA time zone of the viewer")] = None,
) -> ZoneInfo:
    return parse_timezone(tz)


ViewerTimezone = Annotated[ZoneInfo, Depends(resolve_timezone)]


def get_notifier() -> ChangeNotifier:
    return get_change_notifier()


Notifier = Annotated[ChangeNotifier, Depends(get_notifier)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None

