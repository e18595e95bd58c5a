from .celery_app import celery_app
from .billing_tasks import (
    bill_completed_call_task,
    reset_expired_wait_times,
    expire_menu_overrides,
    poll_stale_calls,
    report_pending_overages,
)

__all__ = [
    "celery_app",
    "bill_completed_call_task",
    "reset_expired_wait_times",
    "expire_menu_overrides",
    "poll_stale_calls",
    "report_pending_overages",
]
