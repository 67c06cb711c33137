"""
Persisted UI view state (active tab, scroll offset, open modal).
"""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from teamhub.kernel.models.base import Base, generate_uuid


class ViewStateEntry(Base):
    """One snapshot value for a member, keyed by "<route>::<widget_id>"."""

    __tablename__ = "view_state_entries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    member_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        nullable=False,
        index=True,
    )
    key: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    value: Mapped[Any] = mapped_column(
        JSON,
        nullable=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("member_id", "key", name="uq_view_state_member_key"),
    )
