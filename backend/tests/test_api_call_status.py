"""POST /twiml/status/{restaurant_id}: Twilio status callbacks."""

from unittest.mock import MagicMock

from app.domains.telephony import billing_dispatch
from app.models.call_log import CallLog, CallStatus
from app.models.usage_record import UsageKind, UsageRecord
from app.tasks import billing_tasks
from tests.conftest import (
    create_agent_configuration,
    create_call_log,
    create_restaurant,
    setup_billed_restaurant,
)


def _post_status(client, restaurant_id, **form):
    return client.post(f"/twiml/status/{restaurant_id}", data=form)


def _call_entries(db, account_id):
    return (
        db.query(UsageRecord)
        .filter(UsageRecord.billing_account_id == account_id, UsageRecord.kind == UsageKind.CALL)
        .all()
    )


def test_completed_callback_updates_call_and_bills(client, db):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(
        db, env["restaurant"], status=CallStatus.IN_PROGRESS, duration_seconds=None, twilio_call_sid="CA100"
    )

    resp = _post_status(
        client,
        env["restaurant"].id,
        CallSid="CA100",
        CallStatus="completed",
        CallDuration="61",
        From="+15550001111",
    )

    assert resp.status_code == 200
    assert resp.text == "OK"
    db.expire_all()
    call_log = db.get(CallLog, call_log.id)
    assert call_log.status == CallStatus.COMPLETED
    assert call_log.duration_seconds == 61
    assert call_log.last_polled_at is not None
    assert call_log.usage_claimed_at is not None
    minutes = (
        db.query(UsageRecord)
        .filter(UsageRecord.billing_account_id == env["account"].id, UsageRecord.kind == UsageKind.MINUTE)
        .one()
    )
    assert minutes.quantity == 2
    assert len(_call_entries(db, env["account"].id)) == 1


def test_duplicate_completed_callback_bills_once(client, db):
    env = setup_billed_restaurant(db)
    create_call_log(db, env["restaurant"], status=CallStatus.IN_PROGRESS, duration_seconds=None, twilio_call_sid="CA200")
    form = {"CallSid": "CA200", "CallStatus": "completed", "CallDuration": "30", "From": "+15550001111"}

    assert _post_status(client, env["restaurant"].id, **form).status_code == 200
    assert _post_status(client, env["restaurant"].id, **form).status_code == 200

    db.expire_all()
    assert len(_call_entries(db, env["account"].id)) == 1
    db.refresh(env["account"])
    assert env["account"].monthly_calls_used == 1


def test_callback_falls_back_to_caller_number_and_stores_sid(client, db):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(
        db,
        env["restaurant"],
        status=CallStatus.IN_PROGRESS,
        duration_seconds=None,
        twilio_call_sid=None,
        customer_phone="+15557770000",
    )

    resp = _post_status(
        client,
        env["restaurant"].id,
        CallSid="CA300",
        CallStatus="completed",
        CallDuration="10",
        From="+15557770000",
    )

    assert resp.status_code == 200
    db.expire_all()
    call_log = db.get(CallLog, call_log.id)
    assert call_log.twilio_call_sid == "CA300"
    assert call_log.status == CallStatus.COMPLETED


def test_failed_call_is_not_billed(client, db):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(db, env["restaurant"], status=CallStatus.IN_PROGRESS, twilio_call_sid="CA400")

    resp = _post_status(client, env["restaurant"].id, CallSid="CA400", CallStatus="no-answer", From="+15550001111")

    assert resp.status_code == 200
    db.expire_all()
    call_log = db.get(CallLog, call_log.id)
    assert call_log.status == CallStatus.FAILED
    assert call_log.usage_claimed_at is None
    assert _call_entries(db, env["account"].id) == []


def test_intermediate_status_keeps_call_in_progress(client, db):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(db, env["restaurant"], status=CallStatus.IN_PROGRESS, twilio_call_sid="CA500")

    resp = _post_status(client, env["restaurant"].id, CallSid="CA500", CallStatus="ringing")

    assert resp.status_code == 200
    db.expire_all()
    assert db.get(CallLog, call_log.id).status == CallStatus.IN_PROGRESS


def test_unknown_call_is_acknowledged(client, db):
    restaurant = create_restaurant(db)

    resp = _post_status(client, restaurant.id, CallSid="CA-unknown", CallStatus="completed", From="+15550009999")

    assert resp.status_code == 200
    assert resp.text == "OK"


def test_restaurant_without_billing_still_acknowledges(client, db):
    restaurant = create_restaurant(db)
    create_agent_configuration(db, restaurant, billing_account=None)
    call_log = create_call_log(db, restaurant, status=CallStatus.IN_PROGRESS, twilio_call_sid="CA600")

    resp = _post_status(client, restaurant.id, CallSid="CA600", CallStatus="completed", CallDuration="40")

    assert resp.status_code == 200
    db.expire_all()
    call_log = db.get(CallLog, call_log.id)
    assert call_log.status == CallStatus.COMPLETED
    assert call_log.usage_claimed_at is None


def test_completed_callback_queues_celery_task_when_enabled(client, db, monkeypatch):
    env = setup_billed_restaurant(db)
    call_log = create_call_log(db, env["restaurant"], status=CallStatus.IN_PROGRESS, twilio_call_sid="CA700")
    task = MagicMock()
    monkeypatch.setattr(billing_dispatch.settings, "DISABLE_CELERY", False)
    monkeypatch.setattr(billing_tasks, "bill_completed_call_task", task)

    resp = _post_status(client, env["restaurant"].id, CallSid="CA700", CallStatus="completed", CallDuration="20")

    assert resp.status_code == 200
    task.delay.assert_called_once()
    assert task.delay.call_args.kwargs["call_log_id"] == call_log.id
    db.expire_all()
    assert _call_entries(db, env["account"].id) == []
