from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy.orm import Session

from ..models.call_log import CallLog, CallStatus
from ..shared.utils import utcnow

logger = logging.getLogger(__name__)


def get_call(db: Session, call_log_id: int) -> CallLog | None:
    return db.query(CallLog).filter(CallLog.id == call_log_id).first()


def get_call_by_twilio_sid(db: Session, twilio_call_sid: str) -> CallLog | None:
    if not twilio_call_sid:
        return None
    return db.query(CallLog).filter(CallLog.twilio_call_sid == twilio_call_sid).first()


def find_in_progress_call_from(db: Session, *, restaurant_id: int, customer_phone: str) -> CallLog | None:
    """Fallback match for callbacks that arrive before the CallSid was stored."""
    return (
        db.query(CallLog)
        .filter(
            CallLog.restaurant_id == restaurant_id,
            CallLog.customer_phone == customer_phone,
            CallLog.status == CallStatus.IN_PROGRESS,
        )
        .order_by(CallLog.created_at.desc(), CallLog.id.desc())
        .first()
    )


def get_calls_with_status_older_than(db: Session, status: CallStatus, min_age: timedelta) -> list[CallLog]:
    cutoff = utcnow() - min_age
    return (
        db.query(CallLog)
        .filter(CallLog.status == status, CallLog.created_at < cutoff)
        .order_by(CallLog.id)
        .all()
    )


def update_call(db: Session, call_log_id: int, fields: dict[str, Any]) -> CallLog | None:
    """Apply a partial update and commit. ``usage_claimed_at`` is not writable here."""
    if "usage_claimed_at" in fields:
        raise ValueError("usage_claimed_at is owned by the billing claim")
    call_log = get_call(db, call_log_id)
    if call_log is None:
        return None
    for key, value in fields.items():
        setattr(call_log, key, value)
    db.commit()
    db.refresh(call_log)
    return call_log


def claim_usage(db: Session, call_log_id: int) -> bool:
    """Atomically mark a completed call as billed.

    Exactly one concurrent caller sees ``True``; the write is committed
    before returning so other sessions observe the claim immediately.
    """
    updated = (
        db.query(CallLog)
        .filter(CallLog.id == call_log_id, CallLog.usage_claimed_at.is_(None))
        .update({CallLog.usage_claimed_at: utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def release_usage_claim(db: Session, call_log_id: int) -> None:
    """Reopen a claim whose billing attempt never produced durable usage."""
    (
        db.query(CallLog)
        .filter(CallLog.id == call_log_id, CallLog.usage_claimed_at.isnot(None))
        .update({CallLog.usage_claimed_at: None}, synchronize_session=False)
    )
    db.commit()
    logger.info("Released usage claim for call_log_id=%s", call_log_id)
