"""
Bearer credential handling for /initiate-call.

The caller's identity is the `sub` claim of its bearer JWT. When a
verification key is configured the token signature is checked first;
otherwise the claims are decoded as-is (the upstream identity provider is
trusted to have issued the token).

Python 3.9 compatible - uses typing.Any, typing.Dict, typing.Optional
"""

import logging
from typing import Any, Dict, Optional

from jose import jwt
from jose.exceptions import JOSEError

from .errors import AuthError

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "
VERIFIED_ALGORITHMS = ["HS256", "RS256"]


def extract_subject(
    authorization: Optional[str],
    verification_key: Optional[str] = None,
) -> str:
    """Return the subject identity from an Authorization header.

    Fails closed: any problem with the header, the token or its claims is an
    AuthError (401).

    Args:
        authorization: Raw Authorization header value
        verification_key: Secret or PEM public key; None means claims-only

    Returns:
        The non-empty `sub` claim

    Raises:
        AuthError: header missing/malformed, token undecodable, or no subject
    """
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("Missing or invalid authorization header", status_code=401)

    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthError("Missing or invalid authorization header", status_code=401)

    try:
        if verification_key:
            claims: Dict[str, Any] = jwt.decode(
                token,
                verification_key,
                algorithms=VERIFIED_ALGORITHMS,
                options={"verify_aud": False},
            )
        else:
            claims = jwt.get_unverified_claims(token)
    except JOSEError as e:
        logger.warning(f"Bearer token rejected: {type(e).__name__}")
        raise AuthError("Invalid JWT token", status_code=401)

    subject = claims.get("sub") if isinstance(claims, dict) else None
    if not isinstance(subject, str) or not subject:
        logger.warning("Bearer token has no subject claim")
        raise AuthError("Invalid JWT token", status_code=401)

    return subject


def authorize_user(subject: str, requested_user_id: str) -> None:
    """Reject a request made on behalf of someone other than the token holder.

    Raises:
        AuthError: 403 when the identities differ
    """
    if subject != requested_user_id:
        raise AuthError("Unauthorized: User ID mismatch", status_code=403)
