"""
Call initiation - the only authenticated entry point into a conversation.

Order of checks:
1. Bearer token -> subject (401 on any problem)
2. user_id present in the body (400)
3. Subject == body user_id (403); this is the whole authorization model
4. to_phone_number present and well formed (400)
5. Twilio call creation (500 on failure)

Python 3.9 compatible - uses typing.Any, typing.Optional, typing.Type, typing.TypeVar
"""

import logging
from typing import Any, Optional, Type, TypeVar

from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .auth import authorize_user, extract_subject
from .errors import AuthError, ValidationError
from .models import CallRequest, CallRequester, InitiateCallRequest
from .twilio_service import TwilioService, validate_phone_e164, webhook_url

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


MISSING_FIELDS_MESSAGE = "Missing required fields: user_id and to_phone_number"
NOT_AN_OBJECT_MESSAGE = "Request body must be a JSON object"


def _validate(model: Type[ModelT], body: Any) -> ModelT:
    """Validate a decoded JSON body, mapping pydantic errors to a 400."""
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        if any(error["type"] == "model_type" for error in e.errors()):
            raise ValidationError(NOT_AN_OBJECT_MESSAGE)
        raise ValidationError(MISSING_FIELDS_MESSAGE)


def requested_user_id(body: Any) -> str:
    """Pull user_id out of the /initiate-call JSON body.

    Raises:
        ValidationError: body is not an object or user_id is missing
    """
    return _validate(CallRequester, body).user_id


def parse_call_request(body: Any) -> CallRequest:
    """Validate the JSON body of /initiate-call.

    Raises:
        ValidationError: missing fields or malformed phone number
    """
    request = _validate(InitiateCallRequest, body)

    to_phone_number = request.to_phone_number.strip()
    if not to_phone_number:
        raise ValidationError(MISSING_FIELDS_MESSAGE)
    if not validate_phone_e164(to_phone_number):
        raise ValidationError(
            f"invalid_phone_e164: Phone must be E.164 format, got: {to_phone_number}"
        )

    return CallRequest(requesting_user_id=request.user_id, target_phone_number=to_phone_number)


class CallInitiator:
    """Authenticates the caller and places the outbound call."""

    def __init__(self, twilio: TwilioService, jwt_verification_key: Optional[str] = None):
        self.twilio = twilio
        self.jwt_verification_key = jwt_verification_key

    async def initiate_call(
        self,
        authorization: Optional[str],
        body: Any,
        callback_base_url: Optional[str],
        request_id: str = "unknown",
    ) -> str:
        """Start a conversation call.

        Args:
            authorization: Raw Authorization header
            body: Decoded JSON body
            callback_base_url: Public base URL of this service
            request_id: Request id for log correlation

        Returns:
            Twilio Call SID

        Raises:
            AuthError, ValidationError, UpstreamError
        """
        subject = extract_subject(authorization, self.jwt_verification_key)
        logger.info(f"User ID extracted from JWT: requestId={request_id} userId={subject}")

        user_id = requested_user_id(body)
        try:
            authorize_user(subject, user_id)
        except AuthError:
            logger.error(
                f"User ID mismatch: requestId={request_id} jwtUserId={subject} "
                f"requestUserId={user_id}"
            )
            raise

        call_request = parse_call_request(body)
        if not callback_base_url:
            raise ValidationError("Missing host header")

        callback_url = webhook_url(callback_base_url, call_request.requesting_user_id)
        return await run_in_threadpool(
            self.twilio.start_call,
            call_request.target_phone_number,
            callback_url,
            request_id,
        )
