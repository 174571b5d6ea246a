"""
Twilio request signature verification.

Twilio signs every webhook it sends:
1. Take the full URL Twilio requested (scheme, host, path and query)
2. Append every POST parameter as key + value, keys in ascending order
   (a repeated key contributes each of its values, in sorted order)
3. HMAC-SHA1 the result with the account auth token
4. Base64 encode the digest and send it in X-Twilio-Signature

The URL must be the one Twilio saw, not the one this process sees behind a
proxy, so it is rebuilt from the X-Forwarded-* headers when present.

Reference: https://www.twilio.com/docs/usage/security#validating-requests

Python 3.9 compatible - uses typing.Mapping, typing.Optional
"""

import hmac
import logging
from typing import Mapping, Optional

from twilio.request_validator import RequestValidator

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-twilio-signature"


def compute_signature(auth_token: str, url: str, params: Mapping[str, str]) -> str:
    """Compute the base64 HMAC-SHA1 signature Twilio would send for a request.

    Args:
        auth_token: Twilio auth token (the shared secret)
        url: Full URL of the webhook as requested by Twilio
        params: POST form parameters; a multi-dict (getlist) keeps repeated keys

    Returns:
        Base64-encoded signature
    """
    return RequestValidator(auth_token).compute_signature(url, params)


def verify(
    auth_token: str,
    provided_signature: Optional[str],
    url: Optional[str],
    params: Mapping[str, str],
) -> bool:
    """Check a webhook signature.

    Never raises: anything that prevents a clean comparison (no signature,
    no URL, undecodable input) counts as not verified.

    Args:
        auth_token: Twilio auth token
        provided_signature: Value of the X-Twilio-Signature header
        url: Reconstructed URL Twilio requested
        params: POST form parameters

    Returns:
        True only if the signature matches exactly
    """
    if not provided_signature or not url or not auth_token:
        return False

    try:
        expected = compute_signature(auth_token, url, params)
        return hmac.compare_digest(
            expected.encode("utf-8"), provided_signature.encode("utf-8")
        )
    except Exception as e:
        logger.warning(f"Signature check failed with {type(e).__name__}; treating as invalid")
        return False


def reconstruct_url(
    headers: Mapping[str, str],
    path: str,
    query: str = "",
    default_scheme: str = "https",
) -> Optional[str]:
    """Rebuild the absolute URL the original caller requested.

    Priority for scheme and host:
      1) X-Forwarded-Proto / X-Forwarded-Host (set by the fronting proxy)
      2) Host header with default_scheme

    X-Forwarded-Prefix, when present, is put back in front of the path the
    proxy stripped.

    Args:
        headers: Request headers (case-insensitive mapping)
        path: Path as seen by this process
        query: Raw query string (without '?')
        default_scheme: Scheme to use when no X-Forwarded-Proto is present

    Returns:
        Absolute URL, or None if there is no host to build it from
    """
    xf_proto = (headers.get("x-forwarded-proto") or "").split(",")[0].strip().lower()
    xf_host = (headers.get("x-forwarded-host") or "").split(",")[0].strip()
    host = xf_host or (headers.get("host") or "").strip()
    if not host:
        return None

    scheme = xf_proto or default_scheme
    prefix = (headers.get("x-forwarded-prefix") or "").strip().rstrip("/")
    if prefix and not prefix.startswith("/"):
        prefix = "/" + prefix

    url = f"{scheme}://{host}{prefix}{path}"
    if query:
        url += f"?{query}"
    return url
