"""
Team member profile.

Accounts are provisioned by the external auth provider; this table only
mirrors what read paths need to label events (name and avatar).
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from teamhub.kernel.models.base import Base, TimestampMixin, generate_uuid


class Member(Base, TimestampMixin):
    """A member of the team."""

    __tablename__ = "members"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    avatar_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Member {self.email}>"
