from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: str):
    return _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


@contextmanager
def bind_request_id(request_id: Optional[str]) -> Iterator[None]:
    """Scope a request id to a block of work outside an HTTP request (Celery tasks)."""
    token = _request_id_ctx.set(request_id)
    try:
        yield
    finally:
        _request_id_ctx.reset(token)
