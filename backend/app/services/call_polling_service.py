"""Recover calls whose final status callback never arrived by asking Twilio directly."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.call_log import CallLog, CallStatus
from ..shared.utils import parse_optional_int, utcnow
from .billing_errors import BillingError
from .billing_reconciler import MeterEventClient, bill_completed_call
from .call_log_service import get_calls_with_status_older_than, update_call

logger = logging.getLogger(__name__)

TERMINAL_TWILIO_STATUSES = frozenset({"completed", "failed", "busy", "no-answer", "canceled"})


class CallStatusClient(Protocol):
    def fetch_call(self, call_sid: str) -> dict:
        ...


def map_twilio_status(twilio_status: str | None) -> CallStatus | None:
    """Local status for a terminal Twilio status; ``None`` while the call is still live."""
    value = (twilio_status or "").strip().lower()
    if value not in TERMINAL_TWILIO_STATUSES:
        return None
    return CallStatus.COMPLETED if value == "completed" else CallStatus.FAILED


def _bill(db: Session, call_log: CallLog, stripe_service: MeterEventClient | None) -> None:
    try:
        bill_completed_call(db, call_log, stripe_service=stripe_service)
    except BillingError:
        logger.exception("Billing failed for polled call_log_id=%s", call_log.id)


def _poll_call(
    db: Session,
    call_log: CallLog,
    twilio_service: CallStatusClient,
    stripe_service: MeterEventClient | None,
) -> bool:
    """Settle one stale call against Twilio. Returns whether its status changed."""
    result = twilio_service.fetch_call(call_log.twilio_call_sid)
    if not result.get("success"):
        fields = {"last_polled_at": utcnow()}
        if result.get("not_found"):
            fields["status"] = CallStatus.FAILED
            logger.info("Call call_log_id=%s not found in Twilio, marked failed", call_log.id)
        update_call(db, call_log.id, fields)
        return "status" in fields

    new_status = map_twilio_status(result.get("status"))
    fields = {"last_polled_at": utcnow()}
    if new_status is not None and call_log.status == CallStatus.IN_PROGRESS:
        fields["status"] = new_status
        duration = parse_optional_int(result.get("duration"))
        if duration is not None and not call_log.duration_seconds:
            fields["duration_seconds"] = duration
    updated = update_call(db, call_log.id, fields)

    if "status" not in fields:
        logger.info("Polled call_log_id=%s, status unchanged: %s", call_log.id, result.get("status"))
        return False

    logger.info("Updated call_log_id=%s with status=%s", call_log.id, new_status.value)
    if updated is not None and new_status == CallStatus.COMPLETED:
        _bill(db, updated, stripe_service)
    return True


def _touch_polled(db: Session, call_log_id: int) -> None:
    try:
        update_call(db, call_log_id, {"last_polled_at": utcnow()})
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Could not record poll time for call_log_id=%s", call_log_id)


def poll_stale_in_progress_calls(
    db: Session,
    *,
    twilio_service: CallStatusClient,
    min_age_minutes: int = 15,
    stripe_service: MeterEventClient | None = None,
) -> int:
    """Poll Twilio for in-progress calls older than ``min_age_minutes``.

    A failure on one call is logged and the pass moves on to the next.
    Returns the number of calls whose status changed.
    """
    stale_calls = get_calls_with_status_older_than(
        db, CallStatus.IN_PROGRESS, timedelta(minutes=min_age_minutes)
    )
    if not stale_calls:
        logger.info("No stale in-progress calls found")
        return 0

    logger.info("Found %d stale in-progress calls to check", len(stale_calls))
    stale = [(call_log.id, call_log.twilio_call_sid) for call_log in stale_calls]
    updated_count = 0
    for call_log_id, call_sid in stale:
        if not call_sid:
            logger.info("Skipping call_log_id=%s: no Twilio CallSid", call_log_id)
            continue

        try:
            call_log = db.query(CallLog).filter(CallLog.id == call_log_id).first()
            if call_log is None:
                continue
            if _poll_call(db, call_log, twilio_service, stripe_service):
                updated_count += 1
        except Exception:
            db.rollback()
            logger.exception("Polling failed for call_log_id=%s CallSid=%s", call_log_id, call_sid)
            _touch_polled(db, call_log_id)

    logger.info("Polling complete. Updated %d calls.", updated_count)
    return updated_count
