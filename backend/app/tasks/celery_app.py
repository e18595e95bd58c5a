from celery import Celery
from celery.signals import setup_logging as worker_setup_logging
from ..platform.config import settings
from ..platform.logging import setup_logging

celery_app = Celery(
    "otto",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    beat_schedule={
        "reset-expired-wait-times": {
            "task": "app.tasks.billing_tasks.reset_expired_wait_times",
            "schedule": settings.RESET_SWEEP_INTERVAL_SECONDS,
        },
        "expire-menu-overrides": {
            "task": "app.tasks.billing_tasks.expire_menu_overrides",
            "schedule": settings.RESET_SWEEP_INTERVAL_SECONDS,
        },
        "poll-stale-calls": {
            "task": "app.tasks.billing_tasks.poll_stale_calls",
            "schedule": settings.CALL_POLL_INTERVAL_SECONDS,
        },
        "report-pending-overages": {
            "task": "app.tasks.billing_tasks.report_pending_overages",
            "schedule": settings.OVERAGE_REPORT_INTERVAL_SECONDS,
        },
    },
)

# Auto-discover tasks
celery_app.autodiscover_tasks(["app.tasks"])


@worker_setup_logging.connect
def _configure_worker_logging(**_kwargs):
    # Connecting this signal stops Celery from installing its own handlers
    setup_logging()
