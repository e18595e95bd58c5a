"""
Twilio client for call status lookups.

Only reads call resources; TwiML generation and number provisioning live
elsewhere.
"""

import logging

from twilio.base.exceptions import TwilioRestException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from ....platform.config import settings

logger = logging.getLogger(__name__)


class TwilioService:
    """Service for fetching call state from the Twilio REST API."""

    def __init__(self, account_sid: str, auth_token: str, *, timeout_seconds: float | None = None):
        """
        Initialise the Twilio service.

        Args:
            account_sid: Twilio account SID.
            auth_token: Twilio auth token.
            timeout_seconds: Per-request network timeout.
        """
        http_client = TwilioHttpClient(timeout=timeout_seconds or settings.TWILIO_TIMEOUT_SECONDS)
        self.client = Client(account_sid, auth_token, http_client=http_client)
        logger.info("TwilioService initialised")

    def fetch_call(self, call_sid: str) -> dict:
        """
        Fetch the current state of a call.

        Args:
            call_sid: Twilio CallSid.

        Returns:
            Dict with keys: success, not_found, sid, status, duration, error.
        """
        try:
            call = self.client.calls(call_sid).fetch()
            return {
                "success": True,
                "not_found": False,
                "sid": call.sid,
                "status": call.status,
                "duration": call.duration,
                "error": "",
            }
        except TwilioRestException as e:
            logger.error("Twilio error fetching call %s: %s", call_sid, e.msg)
            return {
                "success": False,
                "not_found": e.status == 404,
                "sid": call_sid,
                "status": None,
                "duration": None,
                "error": str(e.msg),
            }
        except Exception as e:
            logger.error("Unexpected error fetching call %s: %s", call_sid, str(e))
            return {
                "success": False,
                "not_found": False,
                "sid": call_sid,
                "status": None,
                "duration": None,
                "error": str(e),
            }


def build_twilio_service() -> TwilioService | None:
    """Return a configured client, or ``None`` when Twilio is disabled or has no credentials."""
    if settings.DISABLE_TWILIO:
        return None
    if not (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN):
        return None
    return TwilioService(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
