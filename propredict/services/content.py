"""
Tip and ticket listings with entitlement-aware redaction.

Locked items are still listed so the client can show a teaser and the
unlock action, but the pick, odds and analysis are stripped.
"""

import logging
import uuid
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.models.content import Ticket, Tip
from propredict.services.entitlements import ContentType, EntitlementContext, UnlockMethod

logger = logging.getLogger(__name__)


def serialize_tip(tip: Tip, method: UnlockMethod) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": str(tip.id),
        "content_type": ContentType.TIP.value,
        "home_team": tip.home_team,
        "away_team": tip.away_team,
        "league": tip.league,
        "tier": tip.tier,
        "result": tip.result,
        "tip_date": tip.tip_date.isoformat() if tip.tip_date else None,
        "locked": not method.is_unlocked,
        "unlock_method": method.to_dict(),
        "prediction": None,
        "odds": None,
        "confidence": None,
        "ai_prediction": None,
    }
    if method.is_unlocked:
        data.update(
            prediction=tip.prediction,
            odds=tip.odds,
            confidence=tip.confidence,
            ai_prediction=tip.ai_prediction,
        )
    return data


def serialize_ticket(ticket: Ticket, method: UnlockMethod) -> Dict[str, Any]:
    unlocked = method.is_unlocked
    return {
        "id": str(ticket.id),
        "content_type": ContentType.TICKET.value,
        "title": ticket.title,
        "description": ticket.description,
        "tier": ticket.tier,
        "result": ticket.result,
        "ticket_date": ticket.ticket_date.isoformat() if ticket.ticket_date else None,
        "locked": not unlocked,
        "unlock_method": method.to_dict(),
        "total_odds": ticket.total_odds if unlocked else None,
        "ai_analysis": ticket.ai_analysis if unlocked else None,
        "matches": [
            {
                "match_name": match.match_name,
                "prediction": match.prediction if unlocked else None,
                "odds": match.odds if unlocked else None,
            }
            for match in ticket.matches
        ],
    }


class ContentService:
    """Reads published tips and tickets."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_tips(self, context: EntitlementContext, day: Optional[date] = None) -> List[Dict[str, Any]]:
        query = select(Tip).where(Tip.status == "published")
        if day is not None:
            query = query.where(Tip.tip_date == day)
        result = await self.db.execute(query.order_by(Tip.created_at.desc()))
        return [
            serialize_tip(tip, context.get_unlock_method(tip.tier, ContentType.TIP, str(tip.id)))
            for tip in result.scalars().all()
        ]

    async def list_tickets(self, context: EntitlementContext, day: Optional[date] = None) -> List[Dict[str, Any]]:
        query = select(Ticket).where(Ticket.status == "published")
        if day is not None:
            query = query.where(Ticket.ticket_date == day)
        result = await self.db.execute(query.order_by(Ticket.created_at.desc()))
        return [
            serialize_ticket(ticket, context.get_unlock_method(ticket.tier, ContentType.TICKET, str(ticket.id)))
            for ticket in result.scalars().all()
        ]

    async def get_tier(self, content_type: ContentType, content_id: str) -> Optional[str]:
        """Tier of a published item, or None if it does not exist."""
        try:
            item_id = uuid.UUID(str(content_id))
        except ValueError:
            return None
        model = Tip if ContentType(content_type) is ContentType.TIP else Ticket
        result = await self.db.execute(
            select(model.tier).where(model.id == item_id, model.status == "published")
        )
        return result.scalar_one_or_none()
