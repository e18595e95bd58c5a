"""Twilio call status callbacks."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from ...models.call_log import CallStatus
from ...platform.database import get_db
from ...services.call_log_service import find_in_progress_call_from, get_call_by_twilio_sid, update_call
from ...services.call_polling_service import map_twilio_status
from ...shared.states import Claimed
from ...shared.utils import parse_optional_int, utcnow
from .billing_dispatch import dispatch_call_billing

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/twiml", tags=["Telephony"])


@router.post("/status/{restaurant_id}", response_class=PlainTextResponse)
async def call_status_callback(
    restaurant_id: int,
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    """Record the call's final status and queue usage billing; Twilio only needs a 200."""
    form = await request.form()
    call_sid = str(form.get("CallSid") or "").strip()
    call_status = str(form.get("CallStatus") or "").strip().lower()
    call_duration = parse_optional_int(form.get("CallDuration"))
    from_number = str(form.get("From") or "").strip()

    logger.info(
        "Status callback: CallSid=%s Status=%s Duration=%s From=%s restaurant_id=%s",
        call_sid,
        call_status,
        call_duration,
        from_number,
        restaurant_id,
    )

    try:
        call_log = get_call_by_twilio_sid(db, call_sid)
        if call_log is None and from_number:
            call_log = find_in_progress_call_from(db, restaurant_id=restaurant_id, customer_phone=from_number)

        if call_log is None:
            logger.info(
                "No call log found for CallSid=%s From=%s restaurant_id=%s",
                call_sid,
                from_number,
                restaurant_id,
            )
            return PlainTextResponse("OK")

        fields: dict = {"last_polled_at": utcnow()}
        new_status = map_twilio_status(call_status)
        if new_status is not None:
            fields["status"] = new_status
        if call_duration is not None and not call_log.duration_seconds:
            fields["duration_seconds"] = call_duration
        if call_sid and not call_log.twilio_call_sid:
            fields["twilio_call_sid"] = call_sid

        call_log = update_call(db, call_log.id, fields)
        logger.info("Updated call_log_id=%s with status=%s", call_log.id, call_log.status.value)
    except Exception:
        db.rollback()
        logger.exception("Status callback failed for CallSid=%s", call_sid)
        return PlainTextResponse("Error", status_code=500)

    if call_log.status == CallStatus.COMPLETED:
        if isinstance(call_log.usage_claim, Claimed):
            logger.info("Usage already recorded for call_log_id=%s, skipping duplicate", call_log.id)
        else:
            dispatch_call_billing(call_log.id, background_tasks)

    return PlainTextResponse("OK")
