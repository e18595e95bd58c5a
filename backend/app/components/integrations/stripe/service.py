"""
Stripe client for subscription metering.

Submits aggregated metered usage events for overage billing and verifies
webhook signatures. Automatic network retries are disabled: a meter event
that timed out may still have been accepted, so retries happen on a later
reporting pass instead of inside the same request.
"""

import logging

import stripe

from ....platform.config import settings

logger = logging.getLogger(__name__)


class StripeService:
    """Service for reporting usage and reading webhook events through Stripe."""

    def __init__(self, api_key: str, timeout_seconds: float | None = None):
        """
        Initialise the Stripe service.

        Args:
            api_key: Stripe secret API key.
            timeout_seconds: Per-request network timeout.
        """
        stripe.api_key = api_key
        stripe.max_network_retries = 0
        stripe.default_http_client = stripe.RequestsClient(
            timeout=timeout_seconds or settings.STRIPE_TIMEOUT_SECONDS
        )
        logger.info("StripeService initialised")

    def create_meter_event(
        self,
        *,
        event_name: str,
        customer_id: str,
        value: int,
        identifier: str,
    ) -> dict:
        """
        Submit one metered usage event.

        Args:
            event_name: Stripe meter event name (e.g. ``otto_minutes``).
            customer_id: Stripe customer the usage belongs to.
            value: Number of units to bill.
            identifier: Client-generated idempotency identifier.

        Returns:
            Dict with keys: success, event_id, error, error_type, error_code, http_status.
        """
        try:
            logger.info(
                "Sending meter event (event_name=%s, customer_id=%s, value=%d, identifier=%s)",
                event_name,
                customer_id,
                value,
                identifier,
            )

            meter_event = stripe.billing.MeterEvent.create(
                event_name=event_name,
                payload={
                    "value": str(int(value)),
                    "stripe_customer_id": customer_id,
                },
                identifier=identifier,
            )

            event_id = getattr(meter_event, "identifier", None) or identifier
            logger.info("Meter event accepted (identifier=%s)", event_id)

            return {
                "success": True,
                "event_id": event_id,
                "error": "",
                "error_type": None,
                "error_code": None,
                "http_status": None,
            }
        except stripe.StripeError as e:
            logger.error("Stripe error sending meter event: %s", str(e))
            return {
                "success": False,
                "event_id": "",
                "error": getattr(e, "user_message", None) or str(e),
                "error_type": type(e).__name__,
                "error_code": getattr(e, "code", None),
                "http_status": getattr(e, "http_status", None),
            }
        except Exception as e:
            logger.error("Unexpected error sending meter event: %s", str(e))
            return {
                "success": False,
                "event_id": "",
                "error": str(e),
                "error_type": type(e).__name__,
                "error_code": None,
                "http_status": None,
            }

    @staticmethod
    def verify_webhook(payload: bytes, sig_header: str, secret: str) -> None:
        """
        Verify a webhook signature.

        Raises:
            ValueError: payload is not valid JSON.
            stripe.SignatureVerificationError: signature mismatch or stale timestamp.
        """
        stripe.Webhook.construct_event(payload, sig_header, secret)


def build_stripe_service() -> StripeService | None:
    """Return a configured client, or ``None`` when Stripe is disabled or has no key."""
    if settings.DISABLE_STRIPE or not (settings.STRIPE_API_KEY or "").strip():
        return None
    return StripeService(api_key=settings.STRIPE_API_KEY)
