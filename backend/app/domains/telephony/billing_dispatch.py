from __future__ import annotations

import logging

from fastapi import BackgroundTasks

from ...platform.config import settings
from ...platform.database import SessionLocal
from ...platform.request_context import bind_request_id, get_request_id
from ...services.billing_errors import BillingError
from ...services.billing_reconciler import bill_completed_call
from ...services.call_log_service import get_call

logger = logging.getLogger(__name__)


def bill_call_sync(call_log_id: int, request_id: str | None = None) -> None:
    """Bill one completed call in its own session; used when Celery is disabled."""
    db = SessionLocal()
    try:
        with bind_request_id(request_id):
            call_log = get_call(db, call_log_id)
            if call_log is None:
                logger.warning("Call log %s disappeared before billing", call_log_id)
                return
            result = bill_completed_call(db, call_log)
            logger.info("Billing outcome for call_log_id=%s: %s", call_log_id, result.outcome.value)
    except BillingError:
        logger.exception("Billing failed for call_log_id=%s", call_log_id)
    except Exception:
        db.rollback()
        logger.exception("Unexpected billing error for call_log_id=%s", call_log_id)
    finally:
        db.close()


def dispatch_call_billing(call_log_id: int, background_tasks: BackgroundTasks) -> None:
    """Bill after the response is sent: inline background task, or Celery when enabled."""
    if settings.DISABLE_CELERY:
        background_tasks.add_task(bill_call_sync, call_log_id, get_request_id())
        return
    from ...tasks.billing_tasks import bill_completed_call_task

    bill_completed_call_task.delay(call_log_id=call_log_id, request_id=get_request_id())
