"""
Error taxonomy for the call handler.

Every failure that leaves the service is one of these. The transport layer
in main.py maps them to HTTP status codes and envelopes:

- ConfigurationError: missing secrets (500)
- ValidationError: missing/malformed request fields (400)
- AuthError: bad credential (401), identity mismatch or bad signature (403)
- UpstreamError: telephony/generation/synthesis/storage/database failure (500)
- UnknownError: anything else (500, generic message)

Python 3.9 compatible - uses typing.List, typing.Optional
"""

from typing import List, Optional

GENERIC_ERROR_MESSAGE = "An unexpected error occurred while processing the call"


class CallHandlerError(Exception):
    """Base class for all errors raised by the call handler."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ConfigurationError(CallHandlerError):
    """One or more required secrets are missing from the environment."""

    def __init__(self, missing_names: List[str]):
        self.missing_names = list(missing_names)
        super().__init__(
            f"Missing required environment variables: {', '.join(self.missing_names)}",
            status_code=500,
        )


class ValidationError(CallHandlerError):
    status_code = 400


class AuthError(CallHandlerError):
    """Authentication or authorization failure.

    401 when the credential itself is missing or unreadable, 403 when the
    credential is fine but does not grant the request (identity mismatch,
    invalid webhook signature).
    """

    status_code = 401


class UpstreamError(CallHandlerError):
    """A collaborator call failed. The message is passed through to the caller."""

    status_code = 500

    def __init__(self, stage: str, message: str):
        super().__init__(message, status_code=500)
        self.stage = stage


class UnknownError(CallHandlerError):
    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(GENERIC_ERROR_MESSAGE, status_code=500)
        self.detail = detail
