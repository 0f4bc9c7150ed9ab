"""Tip and ticket listing endpoints."""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from propredict.dependencies import SessionContext, get_content_service, get_session_context
from propredict.services.content import ContentService

router = APIRouter(tags=["Content"])


@router.get("/tips")
async def list_tips(
    day: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD"),
    context: SessionContext = Depends(get_session_context),
    content: ContentService = Depends(get_content_service),
) -> Dict[str, Any]:
    """
    List published tips.

    Every tip carries its unlock method. Locked tips are listed without
    their pick, odds and analysis.
    """
    return {"tips": await content.list_tips(context.entitlements, day)}


@router.get("/tickets")
async def list_tickets(
    day: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD"),
    context: SessionContext = Depends(get_session_context),
    content: ContentService = Depends(get_content_service),
) -> Dict[str, Any]:
    """List published tickets, redacting the matches of locked ones."""
    return {"tickets": await content.list_tickets(context.entitlements, day)}
