"""
Tests for Twilio webhook signature verification.

These tests verify that:
1. Our HMAC-SHA1 computation matches the Twilio SDK's own
2. A correct signature verifies; any single-bit change does not
3. Missing inputs are "not verified", never an exception
4. The signed URL is rebuilt from forwarded headers
"""

import base64
import hashlib
import hmac

import pytest
from starlette.datastructures import MultiDict
from twilio.request_validator import RequestValidator

from futurecall.signature import compute_signature, reconstruct_url, verify

AUTH_TOKEN = "12345"
URL = "https://mycompany.com/myapp.php?foo=1&bar=2"
PARAMS = {
    "CallSid": "CA1234567890ABCDE",
    "Caller": "+12349013030",
    "Digits": "1234",
    "From": "+12349013030",
    "To": "+18005551212",
}


def _flip_char(text: str, index: int) -> str:
    """Flip the lowest bit of one character."""
    return text[:index] + chr(ord(text[index]) ^ 1) + text[index + 1:]


class TestComputeSignature:
    """Signature computation."""

    def test_matches_twilio_sdk(self):
        """Same canonical string and digest as twilio.request_validator."""
        expected = RequestValidator(AUTH_TOKEN).compute_signature(URL, PARAMS)
        assert compute_signature(AUTH_TOKEN, URL, PARAMS) == expected

    def test_parameter_order_does_not_matter(self):
        """Keys are sorted before concatenation."""
        reversed_params = dict(reversed(list(PARAMS.items())))
        assert compute_signature(AUTH_TOKEN, URL, reversed_params) == compute_signature(
            AUTH_TOKEN, URL, PARAMS
        )

    def test_no_params_signs_url_only(self):
        expected = RequestValidator(AUTH_TOKEN).compute_signature(URL, {})
        assert compute_signature(AUTH_TOKEN, URL, {}) == expected

    def test_known_canonical_string(self):
        """URL, then key+value pairs in key order, no separators."""
        canonical = URL + "".join(f"{key}{PARAMS[key]}" for key in sorted(PARAMS))
        mac = hmac.new(AUTH_TOKEN.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha1)
        assert compute_signature(AUTH_TOKEN, URL, PARAMS) == base64.b64encode(mac.digest()).decode("utf-8")

    def test_repeated_keys_sign_every_value(self):
        """A multi-valued form field contributes each value, sorted."""
        params = MultiDict([("To", "+2"), ("CallSid", "CA1"), ("To", "+1")])
        canonical = URL + "CallSidCA1" + "To+1" + "To+2"
        mac = hmac.new(AUTH_TOKEN.encode("utf-8"), canonical.encode("utf-8"), hashlib.sha1)
        assert compute_signature(AUTH_TOKEN, URL, params) == base64.b64encode(mac.digest()).decode("utf-8")

    def test_repeated_keys_not_collapsed(self):
        params = MultiDict([("To", "+1"), ("To", "+2")])
        last_value_only = compute_signature(AUTH_TOKEN, URL, {"To": "+2"})
        assert verify(AUTH_TOKEN, last_value_only, URL, params) is False


class TestVerify:
    """verify() accepts exactly the right signature."""

    def test_valid_signature(self):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        assert verify(AUTH_TOKEN, signature, URL, PARAMS) is True

    def test_single_bit_flip_in_signature_fails(self):
        """Every single-bit change in the digest is rejected."""
        digest = bytearray(base64.b64decode(compute_signature(AUTH_TOKEN, URL, PARAMS)))
        for byte_index in range(len(digest)):
            for bit in range(8):
                mutated = bytearray(digest)
                mutated[byte_index] ^= 1 << bit
                signature = base64.b64encode(bytes(mutated)).decode("utf-8")
                assert verify(AUTH_TOKEN, signature, URL, PARAMS) is False

    def test_url_mutation_fails(self):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        for index in range(len(URL)):
            assert verify(AUTH_TOKEN, signature, _flip_char(URL, index), PARAMS) is False

    def test_param_value_mutation_fails(self):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        for key, value in PARAMS.items():
            for index in range(len(value)):
                tampered = dict(PARAMS)
                tampered[key] = _flip_char(value, index)
                assert verify(AUTH_TOKEN, signature, URL, tampered) is False

    def test_added_param_fails(self):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        tampered = dict(PARAMS, SpeechResult="hello")
        assert verify(AUTH_TOKEN, signature, URL, tampered) is False

    def test_wrong_token_fails(self):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        assert verify("other-token", signature, URL, PARAMS) is False

    @pytest.mark.parametrize("signature", [None, ""])
    def test_missing_signature_fails(self, signature):
        assert verify(AUTH_TOKEN, signature, URL, PARAMS) is False

    @pytest.mark.parametrize("url", [None, ""])
    def test_missing_url_fails(self, url):
        signature = compute_signature(AUTH_TOKEN, URL, PARAMS)
        assert verify(AUTH_TOKEN, signature, url, PARAMS) is False

    def test_non_ascii_signature_is_rejected_not_raised(self):
        assert verify(AUTH_TOKEN, "sïgnätüre", URL, PARAMS) is False

    def test_unicode_params(self):
        params = {"SpeechResult": "Ich möchte laufen ✓"}
        signature = RequestValidator(AUTH_TOKEN).compute_signature(URL, params)
        assert verify(AUTH_TOKEN, signature, URL, params) is True


class TestReconstructUrl:
    """URL as Twilio requested it."""

    def test_forwarded_headers_win(self):
        headers = {
            "host": "internal:8080",
            "x-forwarded-proto": "https",
            "x-forwarded-host": "calls.example.com",
        }
        url = reconstruct_url(headers, "/twiml-webhook", "user_id=u1", default_scheme="http")
        assert url == "https://calls.example.com/twiml-webhook?user_id=u1"

    def test_host_header_fallback(self):
        url = reconstruct_url({"host": "calls.example.com"}, "/twiml-webhook", "user_id=u1")
        assert url == "https://calls.example.com/twiml-webhook?user_id=u1"

    def test_first_forwarded_value_used(self):
        headers = {
            "x-forwarded-proto": "https, http",
            "x-forwarded-host": "calls.example.com, proxy.local",
        }
        assert reconstruct_url(headers, "/x") == "https://calls.example.com/x"

    def test_forwarded_prefix_restored(self):
        headers = {
            "host": "project.functions.example.com",
            "x-forwarded-prefix": "/functions/v1/",
        }
        url = reconstruct_url(headers, "/twiml-webhook", "user_id=u1")
        assert url == "https://project.functions.example.com/functions/v1/twiml-webhook?user_id=u1"

    def test_no_query(self):
        assert reconstruct_url({"host": "a.example.com"}, "/p") == "https://a.example.com/p"

    def test_no_host_returns_none(self):
        assert reconstruct_url({}, "/twiml-webhook", "user_id=u1") is None
