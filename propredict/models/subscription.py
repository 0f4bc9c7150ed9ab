"""UserSubscription SQLAlchemy model."""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propredict.db.database import Base


class UserSubscription(Base):
    """
    Subscription record synced from Stripe (web) and RevenueCat (Android).

    One subscription per user.

    Attributes:
        id: UUID primary key
        user_id: Auth provider user ID
        plan: Subscription plan - free, basic, or premium
        status: Subscription status - active, past_due, canceled, expired
        expires_at: When the paid period ends, NULL for non-expiring purchases
        stripe_subscription_id: Stripe subscription ID for web purchases
        created_at: When the subscription was created
        updated_at: When the subscription was last updated
    """

    __tablename__ = "user_subscriptions"

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
    plan: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="free",
    )
    status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="active",
        index=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    stripe_subscription_id: Mapped[Optional[str]] = mapped_column(
        String,
        nullable=True,
        index=True,
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
        return f"<UserSubscription {self.plan} ({self.status})>"

    @property
    def is_active(self) -> bool:
        """Check if the subscription status grants access."""
        return self.status == "active"

    def effective_plan(self, now: datetime) -> str:
        """
        Plan the user is entitled to at ``now``.

        An inactive or lapsed subscription falls back to ``free``.
        """
        if not self.is_active:
            return "free"
        if self.expires_at is not None and self.expires_at <= now:
            return "free"
        return self.plan
