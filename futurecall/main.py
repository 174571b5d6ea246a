"""
Future Self call handler - FastAPI Application

Two endpoints drive a phone conversation with the user's future self:

- POST /initiate-call: authenticated client asks for a call; Twilio dials out
- POST /twiml-webhook: Twilio asks what to do next, once per turn

The webhook never remembers anything between turns. The user id travels in
the webhook URL and the turn is classified from Twilio's form fields, so the
loop continues until Twilio's own gather timeout hangs up.

Python 3.9 compatible.
"""

import logging
import os
import random
import string
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
from urllib.parse import urlencode

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from starlette.datastructures import MultiDict
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import __version__
from .errors import GENERIC_ERROR_MESSAGE, CallHandlerError, ConfigurationError, UnknownError
from .models import ErrorResponse, HealthResponse, SuccessResponse
from .services import close_services, get_services
from .signature import SIGNATURE_HEADER, reconstruct_url, verify
from .turns import classify
from .twilio_service import USER_ID_PARAM

# Load environment variables from .env next to the package or in the cwd
env_paths = [
    Path(__file__).parent.parent / ".env",
    Path.cwd() / ".env",
]
for env_path in env_paths:
    if env_path.exists():
        load_dotenv(env_path)
        break
else:
    load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if os.getenv("DEBUG", "false").lower() == "true" else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type, x-twilio-signature",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Max-Age": "86400",
}

# Twilio only ever calls webhooks over https
WEBHOOK_DEFAULT_SCHEME = "https"


def generate_request_id() -> str:
    """Unique id for tracking one request through the logs."""
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"req_{int(time.time() * 1000)}_{suffix}"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _error_response(error: str, request_id: str, status_code: int = 500) -> JSONResponse:
    logger.error(f"Error response created: requestId={request_id} status={status_code} error={error}")
    body = ErrorResponse(error=error, timestamp=_timestamp(), requestId=request_id)
    return JSONResponse(content=body.model_dump(), status_code=status_code)


def _success_response(message: str, request_id: str, call_sid: Optional[str] = None) -> JSONResponse:
    logger.info(f"Success response created: requestId={request_id} message={message}")
    body = SuccessResponse(
        message=message, call_sid=call_sid, timestamp=_timestamp(), requestId=request_id
    )
    return JSONResponse(content=body.model_dump(exclude_none=True), status_code=200)


def _text_response(message: str, status_code: int) -> PlainTextResponse:
    return PlainTextResponse(content=message, status_code=status_code)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - check configuration early, close clients on exit."""
    logger.info("=" * 60)
    logger.info("Initializing Future Self call handler")
    logger.info("=" * 60)

    try:
        get_services()
    except ConfigurationError as e:
        # /health keeps answering; call endpoints report the missing names
        logger.error(f"Configuration incomplete at startup: {e.message}")

    yield

    await close_services()
    logger.info("Shutting down Future Self call handler")


app = FastAPI(
    title="Future Self Call Handler",
    description="Twilio voice-call orchestration for future-self conversations",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["POST", "OPTIONS"],
    allow_headers=[h.strip() for h in CORS_HEADERS["Access-Control-Allow-Headers"].split(",")],
    max_age=86400,
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Unknown paths and methods get the standard error envelope."""
    error = "Invalid endpoint" if exc.status_code == 404 else str(exc.detail)
    return _error_response(error, generate_request_id(), exc.status_code)


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(version=__version__)


@app.options("/initiate-call")
@app.options("/twiml-webhook")
async def cors_preflight() -> PlainTextResponse:
    """Static CORS preflight; the request body is never read."""
    logger.info(f"CORS preflight request handled: requestId={generate_request_id()}")
    return PlainTextResponse(content="ok", headers=CORS_HEADERS)


@app.post("/initiate-call")
async def initiate_call(request: Request) -> JSONResponse:
    """
    Start an outbound call to the user.

    Body: {"user_id": str, "to_phone_number": str (E.164)}
    Header: Authorization: Bearer <JWT whose sub == user_id>

    Errors:
        400: Missing fields / invalid phone number
        401: Missing or unreadable bearer token
        403: Token subject does not match user_id
        500: Configuration incomplete or Twilio failure
    """
    request_id = generate_request_id()
    logger.info(
        f"Call initiation request: requestId={request_id} "
        f"userAgent={request.headers.get('user-agent')}"
    )

    try:
        services = get_services()

        body: Any
        try:
            body = await request.json()
        except ValueError:
            body = None

        callback_base_url = services.config.webhook_base_url or reconstruct_url(
            request.headers, "", default_scheme=WEBHOOK_DEFAULT_SCHEME
        )

        call_sid = await services.initiator.initiate_call(
            request.headers.get("authorization"),
            body,
            callback_base_url,
            request_id=request_id,
        )
        return _success_response("Call initiated successfully", request_id, call_sid)

    except CallHandlerError as e:
        return _error_response(e.message, request_id, e.status_code)
    except Exception as e:
        error = UnknownError(str(e))
        logger.error(f"Unexpected error in initiate-call: requestId={request_id} error={e}", exc_info=True)
        return _error_response(error.message, request_id, error.status_code)


@app.post("/twiml-webhook")
async def twiml_webhook(request: Request) -> Response:
    """
    Twilio voice webhook - one call per conversational turn.

    Query: user_id (set by /initiate-call, echoed back in every gather action)
    Form: Twilio call parameters; SpeechResult/Confidence after a gather

    Returns TwiML (text/xml). Rejections are plain text and happen before any
    collaborator is called:
        403: Missing or invalid X-Twilio-Signature
        400: Missing user_id
    """
    request_id = generate_request_id()
    logger.info(f"TwiML webhook request: requestId={request_id} path={request.url.path}")

    try:
        services = get_services()
    except ConfigurationError as e:
        logger.error(f"TwiML webhook rejected: requestId={request_id} error={e.message}")
        return _text_response(e.message, 500)

    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature:
        logger.error(f"Missing Twilio signature header: requestId={request_id}")
        return _text_response("Missing Twilio signature", 403)

    params: MultiDict = MultiDict()
    url: Optional[str] = None
    try:
        form = await request.form()
        params = MultiDict(
            [(key, value) for key, value in form.multi_items() if isinstance(value, str)]
        )
        url = reconstruct_url(
            request.headers,
            request.url.path,
            request.url.query,
            default_scheme=WEBHOOK_DEFAULT_SCHEME,
        )
    except Exception as e:
        logger.warning(f"Could not read webhook request: requestId={request_id} error={type(e).__name__}")
        url = None

    if not verify(services.config.twilio_auth_token, signature, url, params):
        logger.error(
            f"Invalid Twilio signature: requestId={request_id} url={url} "
            f"paramsCount={len(params)}"
        )
        return _text_response("Invalid Twilio signature", 403)

    logger.info(f"Twilio signature validated: requestId={request_id}")

    user_id = request.query_params.get(USER_ID_PARAM)
    if not user_id:
        logger.error(f"Missing user_id in webhook request: requestId={request_id}")
        return _text_response("Missing user_id parameter", 400)

    context = classify(params)
    logger.info(
        f"TwiML webhook data received: requestId={request_id} userId={user_id} "
        f"callSid={params.get('CallSid')} callStatus={params.get('CallStatus')} "
        f"turn={type(context).__name__}"
    )

    next_callback_url = reconstruct_url(
        request.headers,
        request.url.path,
        urlencode({USER_ID_PARAM: user_id}),
        default_scheme=WEBHOOK_DEFAULT_SCHEME,
    )

    try:
        twiml = await services.pipeline.build_turn_response(
            user_id, context, next_callback_url, request_id=request_id
        )
    except CallHandlerError as e:
        return _text_response(e.message, e.status_code)
    except Exception as e:
        logger.error(f"Unexpected error in twiml-webhook: requestId={request_id} error={e}", exc_info=True)
        return _text_response(GENERIC_ERROR_MESSAGE, 500)

    return Response(content=twiml, media_type="text/xml")
