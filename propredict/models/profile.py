"""Profile SQLAlchemy model."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propredict.db.database import Base


class Profile(Base):
    """
    Public profile of an authenticated user.

    Also holds the user's push preferences and the marketing push
    cooldown timestamp.

    Attributes:
        id: UUID primary key
        user_id: Auth provider user ID (JWT ``sub``)
        email: User email address
        full_name: Display name
        push_enabled: Whether marketing pushes may be sent
        goal_alerts_enabled: Whether goal alerts may be sent
        last_marketing_push_at: When the last tip/ticket/win push was sent
        created_at: When the profile was created
        updated_at: When the profile was last updated
    """

    __tablename__ = "profiles"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        index=True,
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
    )
    push_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    goal_alerts_enabled: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
    )
    last_marketing_push_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Profile {self.email} ({self.user_id})>"
