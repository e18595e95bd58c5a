"""Celery task bodies run in-process."""

from datetime import timedelta

from app.models.agent_configuration import AgentConfiguration
from app.models.usage_record import UsageKind, UsageRecord
from app.services.usage_ledger_service import append_usage_entry
from app.shared.utils import utcnow
from app.tasks import billing_tasks
from tests.conftest import FakeStripe, create_agent_configuration, create_call_log, create_restaurant, setup_billed_restaurant


def test_bill_completed_call_task_records_usage(db):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(db, env["restaurant"], duration_seconds=150)

    result = billing_tasks.bill_completed_call_task(call_log_id=call_log.id, request_id="req-1")

    assert result["status"] == "recorded"
    assert (result["calls"], result["minutes"]) == (1, 3)


def test_bill_completed_call_task_missing_call(db):
    assert billing_tasks.bill_completed_call_task(call_log_id=987654)["status"] == "missing"


def test_reset_expired_wait_times_task(db):
    restaurant = create_restaurant(db)
    config = create_agent_configuration(
        db,
        restaurant,
        wait_time_minutes=40,
        default_wait_time_minutes=15,
        reset_wait_time_at=utcnow() - timedelta(minutes=1),
    )

    assert billing_tasks.reset_expired_wait_times() == {"status": "ok", "reset": 1}
    db.expire_all()
    assert db.get(AgentConfiguration, config.id).wait_time_minutes == 15


def test_poll_stale_calls_skips_when_twilio_disabled(db):
    assert billing_tasks.poll_stale_calls()["status"] == "skipped"


def test_report_pending_overages_warns_on_backlog_and_reports(db, monkeypatch, caplog):
    env = setup_billed_restaurant(db, calls_used=20)
    for _ in range(3):
        append_usage_entry(
            db,
            billing_account_id=env["account"].id,
            restaurant_id=env["restaurant"].id,
            kind=UsageKind.CALL,
            quantity=1,
        )
    db.commit()
    stripe = FakeStripe()
    monkeypatch.setattr(billing_tasks.settings, "USAGE_BACKLOG_ALERT_THRESHOLD", 2)
    monkeypatch.setattr(
        "app.components.integrations.stripe.service.build_stripe_service",
        lambda: stripe,
    )

    with caplog.at_level("WARNING"):
        result = billing_tasks.report_pending_overages()

    assert result == {"status": "ok", "reported": 1, "failed": 0}
    assert "Unreported usage backlog" in caplog.text
    assert [e["value"] for e in stripe.events] == [3]
    db.expire_all()
    assert db.query(UsageRecord).filter(UsageRecord.reported_to_stripe.is_(False)).count() == 0


def test_report_pending_overages_skips_without_stripe(db):
    env = setup_billed_restaurant(db, calls_used=25)
    append_usage_entry(db, billing_account_id=env["account"].id, restaurant_id=None, kind=UsageKind.CALL, quantity=1)
    db.commit()

    result = billing_tasks.report_pending_overages()

    assert result["status"] == "skipped"
    assert result["backlog"] == 1


def test_report_pending_overages_ignores_usage_the_plan_never_meters(db, monkeypatch, caplog):
    # Starter meters calls only; minute entries are never sent to Stripe.
    env = setup_billed_restaurant(db, minutes_used=600)
    for _ in range(6):
        append_usage_entry(
            db,
            billing_account_id=env["account"].id,
            restaurant_id=env["restaurant"].id,
            kind=UsageKind.MINUTE,
            quantity=100,
        )
    db.commit()
    stripe = FakeStripe()
    monkeypatch.setattr(
        "app.components.integrations.stripe.service.build_stripe_service",
        lambda: stripe,
    )

    with caplog.at_level("WARNING"):
        result = billing_tasks.report_pending_overages()

    assert result == {"status": "ok", "reported": 0, "failed": 0}
    assert "Unreported usage backlog" not in caplog.text
    assert stripe.events == []
