import logging

from .celery_app import celery_app
from ..platform.config import settings
from ..platform.request_context import bind_request_id

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3, default_retry_delay=60)
def bill_completed_call_task(self, call_log_id: int, request_id: str | None = None):
    """Claim a completed call and record its usage; retried when the ledger write fails."""
    from ..platform.database import SessionLocal
    from ..services.billing_errors import UsageRecordingError
    from ..services.billing_reconciler import bill_completed_call
    from ..services.call_log_service import get_call

    db = SessionLocal()
    try:
        with bind_request_id(request_id or self.request.id):
            call_log = get_call(db, call_log_id)
            if call_log is None:
                logger.warning("Call log %s not found for billing", call_log_id)
                return {"status": "missing", "call_log_id": call_log_id}
            result = bill_completed_call(db, call_log)
            return {
                "status": result.outcome.value,
                "call_log_id": call_log_id,
                "calls": result.calls,
                "minutes": result.minutes,
                "overage_error": result.overage_error,
            }
    except UsageRecordingError as exc:
        logger.error("Usage recording failed for call_log_id=%s: %s", call_log_id, exc.detail)
        raise self.retry(exc=exc)
    finally:
        db.close()


@celery_app.task
def reset_expired_wait_times():
    """Periodic task: restore default wait times whose temporary override expired."""
    from ..services.reset_sweepers import WaitTimeResetSweeper

    changed = WaitTimeResetSweeper().run_once()
    if changed:
        logger.info("Reset wait time for %d agent(s)", changed)
    return {"status": "ok", "reset": changed}


@celery_app.task
def expire_menu_overrides():
    """Periodic task: delete menu overrides past their reset time."""
    from ..services.reset_sweepers import MenuOverrideResetSweeper

    changed = MenuOverrideResetSweeper().run_once()
    if changed:
        logger.info("Expired %d menu override(s)", changed)
    return {"status": "ok", "expired": changed}


@celery_app.task
def poll_stale_calls():
    """Periodic task: settle in-progress calls whose status callback never arrived."""
    from ..components.integrations.twilio.service import build_twilio_service
    from ..platform.database import SessionLocal
    from ..services.call_polling_service import poll_stale_in_progress_calls

    twilio_service = build_twilio_service()
    if twilio_service is None:
        return {"status": "skipped", "reason": "twilio_disabled"}

    db = SessionLocal()
    try:
        updated = poll_stale_in_progress_calls(
            db,
            twilio_service=twilio_service,
            min_age_minutes=settings.CALL_POLL_MIN_AGE_MINUTES,
        )
        return {"status": "ok", "updated": updated}
    except Exception:
        logger.exception("Stale call polling failed")
        db.rollback()
        return {"status": "error"}
    finally:
        db.close()


@celery_app.task
def report_pending_overages():
    """Periodic task: retry overage reporting for accounts with unreported usage."""
    from ..components.integrations.stripe.service import build_stripe_service
    from ..platform.database import SessionLocal
    from ..services.billing_errors import OverageReportError
    from ..services.overage_reporting_service import billable_backlog, report_overages

    db = SessionLocal()
    reported = 0
    failed = 0
    try:
        backlog = billable_backlog(db)
        for account, kind, total in backlog:
            if total >= settings.USAGE_BACKLOG_ALERT_THRESHOLD:
                logger.warning(
                    "Unreported usage backlog for billing_account_id=%s: %d %s(s)",
                    account.id,
                    total,
                    kind.value,
                )

        stripe_service = build_stripe_service()
        if stripe_service is None:
            return {"status": "skipped", "reason": "stripe_disabled", "backlog": len(backlog)}

        for account, _, _ in backlog:
            try:
                if report_overages(db, account, stripe_service=stripe_service) is not None:
                    reported += 1
            except OverageReportError:
                failed += 1
        return {"status": "ok", "reported": reported, "failed": failed}
    except Exception:
        logger.exception("Overage reporting pass failed")
        db.rollback()
        return {"status": "error", "reported": reported, "failed": failed}
    finally:
        db.close()
