"""Turn a completed call into ledger usage and, when over the allowance, Stripe overage.

The call claim is the idempotency gate: only the invocation that claims the
call writes ledger rows. Failures before the ledger commit release the claim
so a later callback or poll can retry; failures after it keep the claim,
because re-recording would double-bill once Stripe has seen the usage.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..components.integrations.stripe.service import build_stripe_service
from ..models.agent_configuration import AgentConfiguration
from ..models.billing_account import BillingAccount
from ..models.call_log import CallLog, CallStatus
from ..models.usage_record import UsageKind
from .billing_errors import OverageReportError, UsageRecordingError
from .call_log_service import claim_usage, release_usage_claim
from .overage_reporting_service import MeterEventClient, OverageReport, report_overages
from .usage_ledger_service import append_usage_entry

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    RECORDED = "recorded"
    ALREADY_CLAIMED = "already_claimed"
    NO_BILLING = "no_billing"
    NOT_COMPLETED = "not_completed"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    call_log_id: int
    calls: int = 0
    minutes: int = 0
    overage: OverageReport | None = None
    overage_error: str | None = None


def minutes_for_duration(duration_seconds: int | None) -> int:
    """Billable minutes, rounded up: 61 seconds bills as 2 minutes."""
    seconds = int(duration_seconds or 0)
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 60)


def reconcile_call_usage(
    db: Session,
    *,
    call_log_id: int,
    billing_account_id: int,
    restaurant_id: int | None,
    duration_seconds: int | None,
    stripe_service: MeterEventClient | None = None,
) -> ReconcileResult:
    """Record usage for a call this caller has already claimed."""
    account = db.query(BillingAccount).filter(BillingAccount.id == billing_account_id).first()
    if account is None or not account.stripe_subscription_id:
        logger.warning(
            "Billing account %s has no Stripe subscription, releasing usage claim for call_log_id=%s",
            billing_account_id,
            call_log_id,
        )
        release_usage_claim(db, call_log_id)
        return ReconcileResult(outcome=ReconcileOutcome.NO_BILLING, call_log_id=call_log_id)

    minutes = minutes_for_duration(duration_seconds)
    billing_period = account.billing_cycle_start
    try:
        append_usage_entry(
            db,
            billing_account_id=account.id,
            restaurant_id=restaurant_id,
            kind=UsageKind.CALL,
            quantity=1,
            billing_period=billing_period,
        )
        if minutes > 0:
            append_usage_entry(
                db,
                billing_account_id=account.id,
                restaurant_id=restaurant_id,
                kind=UsageKind.MINUTE,
                quantity=minutes,
                billing_period=billing_period,
            )
        db.commit()
    except (SQLAlchemyError, ValueError) as exc:
        db.rollback()
        logger.exception("Failed to record usage for call_log_id=%s, rolling back usage claim", call_log_id)
        release_usage_claim(db, call_log_id)
        raise UsageRecordingError(call_log_id, str(exc)) from exc

    logger.info(
        "Recorded usage for restaurant_id=%s: 1 call, %d minutes (billing_account_id=%s)",
        restaurant_id,
        minutes,
        account.id,
    )
    result = ReconcileResult(
        outcome=ReconcileOutcome.RECORDED,
        call_log_id=call_log_id,
        calls=1,
        minutes=minutes,
    )

    if stripe_service is None:
        stripe_service = build_stripe_service()
    if stripe_service is None:
        logger.info("Stripe disabled, usage for billing_account_id=%s left unreported", billing_account_id)
        return result

    try:
        result.overage = report_overages(db, account, stripe_service=stripe_service)
    except OverageReportError as exc:
        result.overage_error = exc.detail
        logger.error(
            "Keeping usage claim for call_log_id=%s; %d %s stay unreported until the next reporting pass",
            call_log_id,
            exc.quantity,
            exc.kind,
        )
    except Exception as exc:
        db.rollback()
        result.overage_error = str(exc)
        logger.exception("Overage reporting crashed for billing_account_id=%s, keeping usage claim", billing_account_id)
    return result


def bill_completed_call(
    db: Session,
    call_log: CallLog,
    *,
    stripe_service: MeterEventClient | None = None,
) -> ReconcileResult:
    """Claim a completed call and record its usage against the restaurant's billing account."""
    call_log_id = call_log.id
    if call_log.status != CallStatus.COMPLETED:
        return ReconcileResult(outcome=ReconcileOutcome.NOT_COMPLETED, call_log_id=call_log_id)

    restaurant_id = call_log.restaurant_id
    duration_seconds = call_log.duration_seconds

    if not claim_usage(db, call_log_id):
        logger.info("Usage already recorded for call_log_id=%s, skipping duplicate", call_log_id)
        return ReconcileResult(outcome=ReconcileOutcome.ALREADY_CLAIMED, call_log_id=call_log_id)

    try:
        config = (
            db.query(AgentConfiguration)
            .filter(AgentConfiguration.restaurant_id == restaurant_id)
            .first()
        )
    except SQLAlchemyError:
        db.rollback()
        release_usage_claim(db, call_log_id)
        raise

    if config is None or config.billing_account_id is None:
        logger.warning(
            "Restaurant %s has no billing account set, rolling back usage claim for call_log_id=%s",
            restaurant_id,
            call_log_id,
        )
        release_usage_claim(db, call_log_id)
        return ReconcileResult(outcome=ReconcileOutcome.NO_BILLING, call_log_id=call_log_id)

    return reconcile_call_usage(
        db,
        call_log_id=call_log_id,
        billing_account_id=config.billing_account_id,
        restaurant_id=restaurant_id,
        duration_seconds=duration_seconds,
        stripe_service=stripe_service,
    )
