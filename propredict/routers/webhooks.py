"""Webhook endpoints for payment providers."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from propredict.config import get_settings
from propredict.db.database import get_db
from propredict.services import revenuecat
from propredict.services.revenuecat import RevenueCatError
from propredict.services.stripe_service import StripeWebhookError, stripe_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/stripe-webhook")
async def handle_stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Handle Stripe webhook events.

    Processes subscription lifecycle events:
    - checkout.session.completed: Initial subscription setup
    - customer.subscription.updated: Plan changes, renewals
    - customer.subscription.deleted: Cancellations

    No authentication required (uses Stripe signature verification).

    Args:
        request: Raw HTTP request for payload access.
        stripe_signature: Stripe-Signature header for verification.

    Returns:
        Dict with received status.

    Raises:
        HTTPException(400): If the signature is missing or invalid.
        HTTPException(404): If the paying customer has no profile.
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No signature",
        )

    payload = await request.body()

    try:
        event = stripe_service.verify_webhook_signature(
            payload=payload,
            signature=stripe_signature,
        )
    except ValueError as e:
        logger.warning(f"Invalid webhook signature: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook signature",
        )

    event_type = event["type"]
    logger.info(f"Received Stripe webhook: {event_type}")

    try:
        if event_type == "checkout.session.completed":
            user_id = await stripe_service.handle_checkout_completed(event, db)
            return {"received": True, "user_id": user_id}
        elif event_type == "customer.subscription.updated":
            await stripe_service.handle_subscription_updated(event, db)
        elif event_type == "customer.subscription.deleted":
            await stripe_service.handle_subscription_deleted(event, db)
        else:
            logger.debug(f"Unhandled webhook event type: {event_type}")
    except StripeWebhookError as e:
        logger.error(f"Rejected Stripe webhook {event_type}: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except Exception as e:
        # Answer 200 so Stripe does not retry; the error is in the log
        logger.error(f"Error processing webhook {event_type}: {e}")

    return {"received": True}


@router.post("/revenuecat-webhook")
async def handle_revenuecat_webhook(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Handle RevenueCat events for Android purchases.

    Raises:
        HTTPException(401): If the shared secret does not match.
        HTTPException(400): If the event or user ID is missing or anonymous.
        HTTPException(404): If the user does not exist.
    """
    try:
        revenuecat.check_authorization(get_settings().revenuecat_webhook_secret, authorization)
        body = await request.json()
        if not isinstance(body, dict):
            raise ValueError("body is not an object")
        outcome = await revenuecat.handle_event(db, body)
    except RevenueCatError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except ValueError as e:
        logger.warning(f"RevenueCat webhook: unreadable body: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    return {"success": True, "outcome": outcome}
