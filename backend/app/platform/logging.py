import json
import logging
import sys
from datetime import datetime, timezone

from celery import current_task

from .config import settings
from .request_context import get_request_id

_QUIET_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "twilio.http_client",
    "stripe",
    "celery.beat",
)


def _task_context() -> dict:
    """Name and id of the Celery task running on this thread, if any."""
    if not current_task:
        return {}
    task_id = getattr(current_task.request, "id", None)
    if task_id is None:
        return {}
    return {"task": current_task.name, "task_id": task_id}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        request_id = getattr(record, "request_id", None) or get_request_id()
        if request_id:
            payload["request_id"] = request_id
        payload.update(_task_context())
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def setup_logging(level: str | None = None) -> logging.Logger:
    """JSON logs on stdout for the API process and the Celery workers."""
    log_level = logging.getLevelName((level or settings.LOG_LEVEL).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger
