import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from .request_context import set_request_id

logger = logging.getLogger("otto.middleware")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with method, path, status, and duration.

    Twilio and Stripe retry on slow or failed responses, so the duration and
    request id headers are what ties a provider retry back to our logs.
    """

    def __init__(self, app, quiet_paths: frozenset[str] = frozenset({"/health"})):
        super().__init__(app)
        self.quiet_paths = quiet_paths

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        set_request_id(request_id)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception(
                "method=%s path=%s status=500 duration=%.1fms",
                request.method,
                request.url.path,
                (time.perf_counter() - started) * 1000,
            )
            raise

        duration_ms = (time.perf_counter() - started) * 1000
        if request.url.path not in self.quiet_paths:
            logger.info(
                "method=%s path=%s status=%d duration=%.1fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )

        response.headers["X-Process-Time-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = request_id
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Hardening headers on every response; HSTS only when served over TLS in production."""

    def __init__(self, app, production: bool = False):
        super().__init__(app)
        self.production = production

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if self.production:
            response.headers["Strict-Transport-Security"] = "max-age=63072000; includeSubDomains"
        return response
