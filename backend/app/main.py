import logging as _logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from .platform.brand import BRAND_APP_DESCRIPTION, BRAND_NAME
from .platform.config import settings
from .platform.database import SessionLocal
from .platform.logging import setup_logging
from .platform.middleware import RequestLoggingMiddleware, SecurityHeadersMiddleware

logger = setup_logging()

_is_production = (settings.DEPLOYMENT_ENV or "").strip().lower() == "production"


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    flags = settings.feature_flags
    logger.info(
        "%s API started | env=%s stripe=%s twilio=%s celery=%s",
        BRAND_NAME,
        settings.DEPLOYMENT_ENV,
        "off" if flags.disable_stripe else "on",
        "off" if flags.disable_twilio else "on",
        "off" if flags.disable_celery else "on",
    )
    yield


app = FastAPI(
    title=f"{BRAND_NAME} API",
    description=BRAND_APP_DESCRIPTION,
    version="1.0.0",
    # No interactive docs in production
    docs_url=None if _is_production else "/api/docs",
    openapi_url=None if _is_production else "/api/openapi.json",
    lifespan=_lifespan,
)

_val_logger = _logging.getLogger("otto.validation")


def _json_safe(value):
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    return str(value)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Twilio posts form bodies; a 422 here usually means a malformed callback."""
    errors = exc.errors()
    _val_logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=422, content={"detail": [_json_safe(err) for err in errors]})


# Starlette runs middleware last-added first, so request logging wraps everything.
app.add_middleware(SecurityHeadersMiddleware, production=_is_production)

_cors_origins = [settings.FRONTEND_URL, "http://localhost:5173"]
if settings.CORS_EXTRA_ORIGINS:
    _cors_origins.extend(o.strip() for o in settings.CORS_EXTRA_ORIGINS.split(",") if o.strip())
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o for o in _cors_origins if o],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
)

app.add_middleware(RequestLoggingMiddleware, quiet_paths=frozenset({"/health"}))

if settings.SENTRY_DSN and settings.SENTRY_DSN.startswith("https://"):
    import sentry_sdk
    from sentry_sdk.integrations.celery import CeleryIntegration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.DEPLOYMENT_ENV,
        traces_sample_rate=0.1,
        integrations=[FastApiIntegration(), SqlalchemyIntegration(), CeleryIntegration()],
    )

from .domains.billing_webhooks.webhook_routes import router as webhooks_router
from .domains.telephony.status_routes import router as telephony_router

app.include_router(webhooks_router, prefix="/api/v1")
app.include_router(telephony_router)


def _is_configured_secret(value: str | None) -> bool:
    return (value or "").strip().lower() not in {"", "skip", "changeme"}


def _database_ok() -> bool:
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        return False
    finally:
        db.close()


def _redis_ok() -> bool | None:
    """``None`` when Celery is off and the API never talks to Redis."""
    if settings.DISABLE_CELERY:
        return None
    import redis
    try:
        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2, socket_timeout=2)
        return bool(client.ping())
    except redis.RedisError:
        logger.warning("Health check: redis unreachable at %s", settings.REDIS_URL)
        return False


def _integration_status() -> dict[str, bool]:
    return {
        "stripe_configured": not settings.DISABLE_STRIPE and _is_configured_secret(settings.STRIPE_API_KEY),
        "stripe_webhook_configured": _is_configured_secret(settings.STRIPE_WEBHOOK_SECRET),
        "twilio_configured": not settings.DISABLE_TWILIO
        and _is_configured_secret(settings.TWILIO_ACCOUNT_SID)
        and _is_configured_secret(settings.TWILIO_AUTH_TOKEN),
    }


@app.get("/health")
def health_check():
    db_ok = _database_ok()
    redis_ok = _redis_ok()
    return {
        "status": "healthy" if db_ok and redis_ok is not False else "degraded",
        "service": "otto-api",
        "database": db_ok,
        "redis": redis_ok,
        "integrations": _integration_status(),
    }
