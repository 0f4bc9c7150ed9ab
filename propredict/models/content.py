"""Tip, Ticket and TicketMatch SQLAlchemy models."""

import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from propredict.db.database import Base


class Tip(Base):
    """
    A single-match betting tip.

    ``tier`` is one of free, daily, exclusive, premium. ``status`` is
    draft or published; ``result`` is pending, won or lost.
    """

    __tablename__ = "tips"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    home_team: Mapped[str] = mapped_column(String, nullable=False)
    away_team: Mapped[str] = mapped_column(String, nullable=False)
    league: Mapped[str] = mapped_column(String, nullable=False)
    prediction: Mapped[str] = mapped_column(String, nullable=False)
    odds: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    ai_prediction: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    tier: Mapped[str] = mapped_column(String, nullable=False, default="free", index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft", index=True)
    result: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    tip_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Tip {self.home_team} vs {self.away_team} ({self.tier})>"


class Ticket(Base):
    """A multi-match betting ticket (accumulator)."""

    __tablename__ = "tickets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    title: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    total_odds: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tier: Mapped[str] = mapped_column(String, nullable=False, default="free", index=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft", index=True)
    result: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    ticket_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    matches: Mapped[List["TicketMatch"]] = relationship(
        "TicketMatch",
        back_populates="ticket",
        lazy="selectin",
        order_by="TicketMatch.sort_order",
    )

    def __repr__(self) -> str:
        return f"<Ticket {self.title} ({self.tier})>"


class TicketMatch(Base):
    """One leg of a ticket."""

    __tablename__ = "ticket_matches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    ticket_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tickets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    match_name: Mapped[str] = mapped_column(String, nullable=False)
    prediction: Mapped[str] = mapped_column(String, nullable=False)
    odds: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    ticket: Mapped["Ticket"] = relationship("Ticket", back_populates="matches")
