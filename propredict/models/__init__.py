"""SQLAlchemy models for the ProPredict database."""

from propredict.models.ai_prediction import AIPrediction
from propredict.models.arena import (
    ArenaNotification,
    ArenaPrediction,
    ArenaSeason,
    ArenaUserStats,
)
from propredict.models.content import Ticket, TicketMatch, Tip
from propredict.models.profile import Profile
from propredict.models.push import Favorite, MatchAlertEvent, MatchScoreCache, PushToken
from propredict.models.subscription import UserSubscription
from propredict.models.unlock import UserUnlock

__all__ = [
    "AIPrediction",
    "ArenaNotification",
    "ArenaPrediction",
    "ArenaSeason",
    "ArenaUserStats",
    "Favorite",
    "MatchAlertEvent",
    "MatchScoreCache",
    "Profile",
    "PushToken",
    "Ticket",
    "TicketMatch",
    "Tip",
    "UserSubscription",
    "UserUnlock",
]
