"""Apply Stripe subscription and invoice events to billing accounts.

Event payloads are plain dicts decoded from the webhook body.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from ..models.billing_account import BillingAccount
from ..models.invoice import Invoice
from ..shared.utils import from_unix_timestamp
from .plan_catalog_service import resolve_plan_id
from .usage_ledger_service import reset_monthly_usage

logger = logging.getLogger(__name__)


def _nested_get(payload: Any, *path: Any) -> Any:
    current = payload
    for key in path:
        if isinstance(key, int):
            if not isinstance(current, list) or len(current) <= key:
                return None
            current = current[key]
            continue
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


def _customer_id(obj: dict[str, Any]) -> str | None:
    customer = obj.get("customer")
    if isinstance(customer, dict):
        customer = customer.get("id")
    return str(customer) if customer else None


def get_account_by_customer(db: Session, customer_id: str | None) -> BillingAccount | None:
    if not customer_id:
        return None
    return db.query(BillingAccount).filter(BillingAccount.stripe_customer_id == customer_id).first()


def sync_invoice(db: Session, stripe_invoice: dict[str, Any]) -> Invoice | None:
    """Insert or refresh the local copy of a Stripe invoice."""
    account = get_account_by_customer(db, _customer_id(stripe_invoice))
    invoice_id = stripe_invoice.get("id")
    if account is None or not invoice_id:
        logger.info("Ignoring invoice %s for unknown customer", invoice_id)
        return None

    invoice = db.query(Invoice).filter(Invoice.stripe_invoice_id == invoice_id).first()
    if invoice is None:
        invoice = Invoice(stripe_invoice_id=invoice_id, billing_account_id=account.id)
        db.add(invoice)

    invoice.billing_account_id = account.id
    invoice.invoice_number = stripe_invoice.get("number")
    invoice.status = str(stripe_invoice.get("status") or "draft")
    invoice.amount_due_cents = stripe_invoice.get("amount_due")
    invoice.amount_paid_cents = stripe_invoice.get("amount_paid")
    invoice.currency = stripe_invoice.get("currency") or "usd"
    invoice.billing_period_start = from_unix_timestamp(stripe_invoice.get("period_start"))
    invoice.billing_period_end = from_unix_timestamp(stripe_invoice.get("period_end"))
    invoice.pdf_url = stripe_invoice.get("invoice_pdf")
    invoice.hosted_invoice_url = stripe_invoice.get("hosted_invoice_url")
    db.commit()
    logger.info("Synced invoice %s (status=%s, billing_account_id=%s)", invoice_id, invoice.status, account.id)
    return invoice


def apply_subscription_update(db: Session, subscription: dict[str, Any]) -> BillingAccount | None:
    """Copy status, plan and current period from a subscription event onto its account."""
    account = get_account_by_customer(db, _customer_id(subscription))
    if account is None:
        logger.info("Ignoring subscription %s for unknown customer", subscription.get("id"))
        return None

    status = subscription.get("status")
    if status:
        account.subscription_status = str(status)
    if subscription.get("id") and status != "canceled":
        account.stripe_subscription_id = subscription["id"]

    lookup_key = _nested_get(subscription, "items", "data", 0, "price", "lookup_key")
    plan_id = resolve_plan_id(lookup_key)
    if plan_id is not None:
        account.subscription_plan = plan_id
    elif lookup_key:
        logger.warning("Unknown plan lookup_key=%s on subscription %s", lookup_key, subscription.get("id"))

    # Newer API versions carry the period on the subscription item.
    period_start = subscription.get("current_period_start") or _nested_get(
        subscription, "items", "data", 0, "current_period_start"
    )
    period_end = subscription.get("current_period_end") or _nested_get(
        subscription, "items", "data", 0, "current_period_end"
    )
    if period_start:
        account.billing_cycle_start = from_unix_timestamp(period_start)
    if period_end:
        account.billing_cycle_end = from_unix_timestamp(period_end)

    db.commit()
    logger.info(
        "Updated subscription for billing_account_id=%s (status=%s, plan=%s)",
        account.id,
        account.subscription_status,
        account.subscription_plan,
    )
    return account


def handle_billing_period_start(db: Session, stripe_invoice: dict[str, Any]) -> bool:
    """Zero monthly counters for the invoice's account; redelivery of the same invoice is a no-op."""
    account = get_account_by_customer(db, _customer_id(stripe_invoice))
    invoice_id = stripe_invoice.get("id")
    if account is None or not invoice_id:
        return False
    reset = reset_monthly_usage(db, account.id, reset_ref=str(invoice_id))
    db.commit()
    if reset:
        logger.info("Reset monthly usage for billing_account_id=%s (invoice=%s)", account.id, invoice_id)
    else:
        logger.info("Monthly usage already reset for invoice=%s", invoice_id)
    return reset
