# Stripe webhook: subscription state, invoices and billing-period resets.
from __future__ import annotations

import json
import logging
from typing import Any, Callable

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from ...components.integrations.stripe.service import StripeService
from ...platform.config import settings
from ...platform.database import get_db
from ...services.subscription_sync_service import (
    apply_subscription_update,
    handle_billing_period_start,
    sync_invoice,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

_EVENT_HANDLERS: dict[str, Callable[[Session, dict[str, Any]], Any]] = {
    "invoice.paid": sync_invoice,
    "invoice.payment_failed": sync_invoice,
    "customer.subscription.updated": apply_subscription_update,
    "customer.subscription.deleted": apply_subscription_update,
    "invoice.created": handle_billing_period_start,
}


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle incoming Stripe webhooks."""
    if settings.DISABLE_STRIPE:
        raise HTTPException(status_code=503, detail="Stripe integration is disabled")
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise HTTPException(status_code=503, detail="Stripe webhook secret is not configured")
    payload = await request.body()
    sig_header = request.headers.get("Stripe-Signature", "")

    try:
        StripeService.verify_webhook(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
        event = json.loads(payload)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError:
        raise HTTPException(status_code=400, detail="Invalid signature")

    event_type = event.get("type")
    data = (event.get("data") or {}).get("object") or {}
    handler = _EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info("Unhandled Stripe event type %s", event_type)
        return {"status": "ignored", "event_type": event_type}

    try:
        handler(db, data)
    except Exception:
        db.rollback()
        logger.exception("Error handling Stripe event %s (%s)", event.get("id"), event_type)
        raise HTTPException(status_code=500, detail="Webhook handler error")
    return {"status": "received", "event_type": event_type}
