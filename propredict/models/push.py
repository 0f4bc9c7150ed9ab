"""Push token, favorite and live-score tracking SQLAlchemy models."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propredict.db.database import Base


class PushToken(Base):
    """
    A OneSignal player ID registered by a device.

    Attributes:
        onesignal_player_id: OneSignal subscription/player ID
        user_id: Owning user, NULL for anonymous web subscribers
        platform: android or web
    """

    __tablename__ = "users_push_tokens"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    onesignal_player_id: Mapped[str] = mapped_column(
        String,
        unique=True,
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    platform: Mapped[str] = mapped_column(String, nullable=False, default="android")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class Favorite(Base):
    """A match a user follows for goal alerts."""

    __tablename__ = "favorites"
    __table_args__ = (
        UniqueConstraint("user_id", "match_id", name="uq_favorites_user_match"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    match_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class MatchScoreCache(Base):
    """Last observed score of a live match."""

    __tablename__ = "match_scores_cache"

    match_id: Mapped[str] = mapped_column(String, primary_key=True)
    home_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    away_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class MatchAlertEvent(Base):
    """A goal event that has already been notified, one per match/type/minute."""

    __tablename__ = "match_alert_events"
    __table_args__ = (
        UniqueConstraint(
            "match_id",
            "event_type",
            "minute",
            name="uq_match_alert_events_match_type_minute",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    match_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    minute: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    home_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    away_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
