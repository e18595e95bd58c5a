"""Stripe and Twilio client wrappers with the SDK calls mocked."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import stripe
from twilio.base.exceptions import TwilioRestException

from app.components.integrations.stripe.service import StripeService, build_stripe_service
from app.components.integrations.twilio.service import TwilioService, build_twilio_service
from app.platform.config import settings


def test_meter_event_success():
    service = StripeService(api_key="sk_test_123", timeout_seconds=5)
    with patch.object(stripe.billing.MeterEvent, "create", return_value=SimpleNamespace(identifier="7_1700000000000")) as create:
        result = service.create_meter_event(
            event_name="otto_calls",
            customer_id="cus_123",
            value=5,
            identifier="7_1700000000000",
        )

    assert result["success"] is True
    assert result["event_id"] == "7_1700000000000"
    create.assert_called_once_with(
        event_name="otto_calls",
        payload={"value": "5", "stripe_customer_id": "cus_123"},
        identifier="7_1700000000000",
    )
    assert stripe.max_network_retries == 0


def test_meter_event_stripe_error_is_returned_not_raised():
    service = StripeService(api_key="sk_test_123")
    error = stripe.APIConnectionError("connection reset")
    with patch.object(stripe.billing.MeterEvent, "create", side_effect=error):
        result = service.create_meter_event(
            event_name="otto_minutes",
            customer_id="cus_123",
            value=3,
            identifier="7_1",
        )

    assert result["success"] is False
    assert "connection reset" in result["error"]
    assert result["error_type"] == "APIConnectionError"


def test_build_stripe_service_respects_flag(monkeypatch):
    monkeypatch.setattr(settings, "DISABLE_STRIPE", True)
    monkeypatch.setattr(settings, "STRIPE_API_KEY", "sk_test_123")
    assert build_stripe_service() is None

    monkeypatch.setattr(settings, "DISABLE_STRIPE", False)
    monkeypatch.setattr(settings, "STRIPE_API_KEY", "")
    assert build_stripe_service() is None


def _twilio_with_call(fetch):
    service = TwilioService("AC123", "token", timeout_seconds=2)
    context = MagicMock()
    context.fetch.side_effect = fetch
    service.client = MagicMock()
    service.client.calls.return_value = context
    return service


def test_fetch_call_success():
    call = SimpleNamespace(sid="CA1", status="completed", duration="61")
    service = _twilio_with_call(lambda: call)

    result = service.fetch_call("CA1")

    assert result["success"] is True
    assert result["status"] == "completed"
    assert result["duration"] == "61"
    service.client.calls.assert_called_once_with("CA1")


def test_fetch_call_not_found():
    def missing():
        raise TwilioRestException(404, "https://api.twilio.com/Calls/CA404.json", msg="Not found")

    result = _twilio_with_call(missing).fetch_call("CA404")

    assert result["success"] is False
    assert result["not_found"] is True


def test_fetch_call_server_error_is_not_treated_as_missing():
    def broken():
        raise TwilioRestException(503, "https://api.twilio.com/Calls/CA503.json", msg="Unavailable")

    result = _twilio_with_call(broken).fetch_call("CA503")

    assert result["success"] is False
    assert result["not_found"] is False


def test_build_twilio_service_respects_flag(monkeypatch):
    monkeypatch.setattr(settings, "DISABLE_TWILIO", True)
    assert build_twilio_service() is None
    monkeypatch.setattr(settings, "DISABLE_TWILIO", False)
    monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "")
    assert build_twilio_service() is None
