import os
# Override DATABASE_URL before any app imports to avoid PostgreSQL driver requirement
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
# Keep external integrations disabled by default for unit/API tests. Individual
# tests can opt-in by monkeypatching settings or passing fake clients.
os.environ["DISABLE_STRIPE"] = "true"
os.environ["DISABLE_TWILIO"] = "true"
os.environ["DISABLE_CELERY"] = "true"

import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from app.platform.database import Base, SessionLocal, engine, get_db
from app.main import app
from app.models.agent_configuration import AgentConfiguration
from app.models.billing_account import BillingAccount
from app.models.call_log import CallLog, CallStatus
from app.models.restaurant import Restaurant
from app.models.subscription_price import PlanId
from app.services.plan_catalog_service import upsert_plan_prices

# Tests share the application's engine so code that opens its own
# SessionLocal (sweepers, background billing) sees the same database.
TestingSessionLocal = SessionLocal


# Enable foreign key support for SQLite
@event.listens_for(engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def db():
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    yield db
    db.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Fake provider clients
# ---------------------------------------------------------------------------


class FakeStripe:
    """Records meter events; ``fail`` makes every submission come back rejected."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: list[dict] = []

    def create_meter_event(self, *, event_name, customer_id, value, identifier):
        self.events.append(
            {
                "event_name": event_name,
                "customer_id": customer_id,
                "value": value,
                "identifier": identifier,
            }
        )
        if self.fail:
            return {
                "success": False,
                "event_id": "",
                "error": "Stripe is unavailable",
                "error_type": "APIConnectionError",
                "error_code": None,
                "http_status": None,
            }
        return {
            "success": True,
            "event_id": f"mevt_{len(self.events)}",
            "error": "",
            "error_type": None,
            "error_code": None,
            "http_status": None,
        }


class FakeTwilio:
    """Serves canned call resources keyed by CallSid; unknown sids look like a 404."""

    def __init__(self, calls: dict[str, dict] | None = None):
        self.calls = calls or {}
        self.fetched: list[str] = []

    def fetch_call(self, call_sid):
        self.fetched.append(call_sid)
        call = self.calls.get(call_sid)
        if call is None:
            return {
                "success": False,
                "not_found": True,
                "sid": call_sid,
                "status": None,
                "duration": None,
                "error": "The requested resource was not found",
            }
        return {
            "success": True,
            "not_found": False,
            "sid": call_sid,
            "status": call.get("status"),
            "duration": call.get("duration"),
            "error": "",
        }


# ---------------------------------------------------------------------------
# Factory helpers to create test entities quickly and consistently
# ---------------------------------------------------------------------------

_counter = 0


def _unique_id() -> str:
    global _counter
    _counter += 1
    return f"{_counter}-{uuid.uuid4().hex[:8]}"


def create_plan(db, plan=PlanId.STARTER, *, metered: bool = True):
    row = upsert_plan_prices(
        db,
        plan=plan,
        stripe_price_id=f"price_{plan.value}",
        stripe_metered_price_id=f"price_{plan.value}_metered" if metered else None,
    )
    db.commit()
    return row


def create_billing_account(db, *, plan=PlanId.STARTER, subscribed=True, calls_used=0, minutes_used=0, **overrides):
    uid = _unique_id()
    account = BillingAccount(
        email=overrides.pop("email", f"owner-{uid}@test.com"),
        name=overrides.pop("name", "Test Owner"),
        stripe_customer_id=overrides.pop("stripe_customer_id", f"cus_{uid}"),
        stripe_subscription_id=f"sub_{uid}" if subscribed else None,
        subscription_plan=plan,
        subscription_status="active" if subscribed else None,
        monthly_calls_used=calls_used,
        monthly_minutes_used=minutes_used,
        **overrides,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


def create_restaurant(db, name=None):
    restaurant = Restaurant(name=name or f"Restaurant {_unique_id()}")
    db.add(restaurant)
    db.commit()
    db.refresh(restaurant)
    return restaurant


def create_agent_configuration(db, restaurant, billing_account=None, **overrides):
    config = AgentConfiguration(
        restaurant_id=restaurant.id,
        billing_account_id=billing_account.id if billing_account else None,
        phone_number=overrides.pop("phone_number", f"+1555{uuid.uuid4().int % 10_000_000:07d}"),
        **overrides,
    )
    db.add(config)
    db.commit()
    db.refresh(config)
    return config


def create_call_log(db, restaurant, *, status=CallStatus.COMPLETED, duration_seconds=90, **overrides):
    call_log = CallLog(
        restaurant_id=restaurant.id,
        customer_phone=overrides.pop("customer_phone", "+15550001111"),
        twilio_call_sid=overrides.pop("twilio_call_sid", f"CA{uuid.uuid4().hex}"),
        status=status,
        duration_seconds=duration_seconds,
        **overrides,
    )
    db.add(call_log)
    db.commit()
    db.refresh(call_log)
    return call_log


def setup_billed_restaurant(db, *, plan=PlanId.STARTER, calls_used=0, minutes_used=0, metered=True):
    """Plan row, subscribed account, restaurant and agent configuration wired together."""
    create_plan(db, plan, metered=metered)
    account = create_billing_account(db, plan=plan, calls_used=calls_used, minutes_used=minutes_used)
    restaurant = create_restaurant(db)
    config = create_agent_configuration(db, restaurant, account)
    return {"account": account, "restaurant": restaurant, "config": config}


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)
