"""Report monthly usage beyond a plan's allowance to Stripe as metered events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy.orm import Session

from ..models.billing_account import BillingAccount
from ..models.usage_record import UsageKind
from ..platform.config import settings
from ..shared.utils import epoch_millis
from .billing_errors import OverageReportError
from .plan_catalog_service import get_plan
from .usage_ledger_service import get_unreported, mark_reported, monthly_usage, unreported_backlog

logger = logging.getLogger(__name__)


class MeterEventClient(Protocol):
    def create_meter_event(self, *, event_name: str, customer_id: str, value: int, identifier: str) -> dict:
        ...


@dataclass
class OverageReport:
    billing_account_id: int
    kind: UsageKind
    overage_quantity: int
    reported_quantity: int
    stripe_event_id: str
    record_ids: list[int] = field(default_factory=list)


def compute_overage_quantity(used: int | None, included: int | None) -> int:
    return max(0, int(used or 0) - int(included or 0))


def meter_event_name(kind: UsageKind) -> str:
    if kind == UsageKind.CALL:
        return settings.STRIPE_METER_EVENT_CALLS
    return settings.STRIPE_METER_EVENT_MINUTES


def report_overages(
    db: Session,
    account: BillingAccount,
    *,
    stripe_service: MeterEventClient,
) -> OverageReport | None:
    """Push the account's unreported usage to Stripe once it is past the plan allowance.

    Returns ``None`` when there is nothing to report (no subscription, no
    overage model, under the allowance, empty backlog, no metered price).
    Raises ``OverageReportError`` when Stripe does not accept the event; in
    that case nothing is marked reported.
    """
    if not account.stripe_subscription_id or not account.subscription_plan:
        return None

    plan = get_plan(db, account.subscription_plan)
    if plan is None:
        logger.info(
            "No price configuration for plan=%s (billing_account_id=%s)",
            account.subscription_plan,
            account.id,
        )
        return None

    kind = plan.overage_kind
    if kind is None:
        return None

    overage_quantity = compute_overage_quantity(monthly_usage(account, kind), plan.included_for(kind))
    if overage_quantity <= 0:
        return None

    logger.info(
        "Overage detected for billing_account_id=%s: %d %s(s) over plan limit",
        account.id,
        overage_quantity,
        kind.value,
    )

    unreported = get_unreported(db, account.id, kind)
    if not unreported:
        logger.info("No unreported %s records for billing_account_id=%s", kind.value, account.id)
        return None

    if not plan.stripe_metered_price_id:
        logger.info("No metered price configured for plan=%s", plan.plan.value)
        return None

    total_quantity = sum(int(record.quantity) for record in unreported)
    record_ids = [record.id for record in unreported]
    identifier = f"{account.id}_{epoch_millis()}"

    result = stripe_service.create_meter_event(
        event_name=meter_event_name(kind),
        customer_id=account.stripe_customer_id or "",
        value=total_quantity,
        identifier=identifier,
    )
    if not result.get("success"):
        logger.error(
            "Failed to send meter event billing_account_id=%s customer_id=%s kind=%s quantity=%d "
            "error=%s error_type=%s error_code=%s http_status=%s",
            account.id,
            account.stripe_customer_id,
            kind.value,
            total_quantity,
            result.get("error"),
            result.get("error_type"),
            result.get("error_code"),
            result.get("http_status"),
        )
        raise OverageReportError(
            billing_account_id=account.id,
            kind=kind.value,
            quantity=total_quantity,
            detail=str(result.get("error") or "unknown error"),
            error_code=result.get("error_code"),
        )

    event_id = str(result.get("event_id") or identifier)
    marked = mark_reported(db, record_ids, event_id)
    db.commit()
    logger.info(
        "Marked %d usage records as reported (billing_account_id=%s, event_id=%s)",
        marked,
        account.id,
        event_id,
    )
    return OverageReport(
        billing_account_id=account.id,
        kind=kind,
        overage_quantity=overage_quantity,
        reported_quantity=total_quantity,
        stripe_event_id=event_id,
        record_ids=record_ids,
    )


def billable_backlog(db: Session) -> list[tuple[BillingAccount, UsageKind, int]]:
    """Unreported usage that a reporting pass could still send.

    Only the plan's overage kind is ever metered, so entries of the other kind
    stay unreported for good and are left out here.
    """
    plans: dict = {}
    backlog = []
    for account_id, kind, total in unreported_backlog(db):
        account = db.query(BillingAccount).filter(BillingAccount.id == account_id).first()
        if account is None or not account.subscription_plan:
            continue
        if account.subscription_plan not in plans:
            plans[account.subscription_plan] = get_plan(db, account.subscription_plan)
        plan = plans[account.subscription_plan]
        if plan is None or plan.overage_kind != kind:
            continue
        backlog.append((account, kind, total))
    return backlog
