"""AIPrediction SQLAlchemy model."""

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Boolean, Date, DateTime, Float, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from propredict.db.database import Base


class AIPrediction(Base):
    """
    Model-generated 1X2 prediction for a fixture.

    Attributes:
        id: UUID primary key
        match_id: API-Football fixture ID
        prediction: Predicted outcome encoding - "1", "X" or "2"
        result_status: pending, won or lost
        match_date: Kickoff date used by the result job window
        is_premium: Among the day's top picks shown to premium users
    """

    __tablename__ = "ai_predictions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    match_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    home_team: Mapped[str] = mapped_column(String, nullable=False)
    away_team: Mapped[str] = mapped_column(String, nullable=False)
    league: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    prediction: Mapped[str] = mapped_column(String, nullable=False)
    home_win: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    draw: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    away_win: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    predicted_score: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    risk_level: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    analysis: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_premium: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    result_status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default="pending",
        index=True,
    )
    match_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    match_timestamp: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<AIPrediction {self.home_team} vs {self.away_team}: {self.prediction}>"
