"""
Twilio Service - places the outbound call that starts a conversation.

This service:
1. Validates the destination number (E.164)
2. Builds the webhook URL, carrying the user id as a query parameter
3. Creates the call via the Twilio REST API

Nothing about the call is stored; Twilio's call SID is returned to the caller
and the webhook chain carries the user id from then on.

Python 3.9 compatible - uses typing.Optional
"""

import logging
import re
from typing import Optional
from urllib.parse import urlencode

from twilio.rest import Client as TwilioClient

from .config import Config
from .errors import UpstreamError

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/twiml-webhook"
USER_ID_PARAM = "user_id"


def validate_phone_e164(phone: str) -> bool:
    """
    Validate E.164 phone format: starts with +, followed by digits only.
    Examples: +61731824583, +14155551234
    """
    if not phone:
        return False
    pattern = r'^\+[1-9]\d{6,14}$'
    return bool(re.match(pattern, phone))


def mask_phone(phone: str) -> str:
    """Mask phone number for logs."""
    return phone[:6] + "***"


def webhook_url(base_url: str, user_id: str) -> str:
    """Webhook URL for a conversation; the user id is the only state it carries."""
    return f"{base_url.rstrip('/')}{WEBHOOK_PATH}?{urlencode({USER_ID_PARAM: user_id})}"


class TwilioService:
    """Creates outbound calls via Twilio."""

    def __init__(self, config: Config, client: Optional[TwilioClient] = None):
        self.phone_number = config.twilio_from_number
        self.client = client or TwilioClient(config.twilio_account_sid, config.twilio_auth_token)
        logger.info(f"TwilioService configured with phone: {self.phone_number}")

    def start_call(self, to_number: str, callback_url: str, request_id: str = "unknown") -> str:
        """Start an outbound call.

        Args:
            to_number: Destination in E.164 format
            callback_url: Webhook Twilio fetches TwiML from once answered
            request_id: Request id for log correlation

        Returns:
            Twilio Call SID

        Raises:
            UpstreamError: If the Twilio API call fails
        """
        logger.info(
            f"Initiating Twilio call: requestId={request_id} "
            f"to={mask_phone(to_number)} from={self.phone_number}"
        )

        try:
            call = self.client.calls.create(
                to=to_number,
                from_=self.phone_number,
                url=callback_url,
                method="POST",
            )
        except Exception as e:
            logger.error(f"Twilio API error: requestId={request_id} error={e}")
            raise UpstreamError("telephony", f"Twilio API error: {e}")

        logger.info(
            f"Twilio call initiated: requestId={request_id} "
            f"callSid={call.sid} status={call.status}"
        )
        return call.sid
