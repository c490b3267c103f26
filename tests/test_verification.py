"""Tests for Shiprocket webhook signature verification."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
from unittest.mock import patch

import pytest
from hypothesis import given
from hypothesis import strategies as st

from orderhub.errors import AuthenticationError
from orderhub.webhooks.verification import (
    compute_signature,
    is_valid_signature,
    sign_json,
    verify_signature,
)

SECRET = "shiprocket-test-secret"


def _sign(body: bytes, secret: str = SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


class TestComputeSignature:

    def test_matches_base64_hmac_sha256(self):
        body = b'{"order_id":"SR-1","status":"SUCCESS"}'
        assert compute_signature(body, SECRET) == _sign(body)

    def test_empty_body_is_signable(self):
        assert compute_signature(b"", SECRET) == _sign(b"")


class TestIsValidSignature:

    def test_valid_signature(self):
        body = b'{"order_id": 123}'
        assert is_valid_signature(body, _sign(body), SECRET) is True

    def test_surrounding_whitespace_in_header_is_ignored(self):
        body = b'{"order_id": 123}'
        assert is_valid_signature(body, f"  {_sign(body)} ", SECRET) is True

    def test_tampered_body(self):
        sig = _sign(b'{"order_id": 123}')
        assert is_valid_signature(b'{"order_id": 456}', sig, SECRET) is False

    def test_wrong_secret(self):
        body = b'{"order_id": 123}'
        assert is_valid_signature(body, _sign(body, "other-secret"), SECRET) is False

    def test_missing_signature(self):
        assert is_valid_signature(b"body", None, SECRET) is False
        assert is_valid_signature(b"body", "", SECRET) is False

    def test_empty_secret_rejects(self):
        """No secret configured -> always reject (fail-closed)."""
        body = b'{"order_id": 123}'
        assert is_valid_signature(body, _sign(body, ""), "") is False

    @patch("orderhub.webhooks.verification.settings")
    def test_defaults_to_configured_secret(self, mock_settings):
        mock_settings.shiprocket_webhook_secret = SECRET
        body = b'{"a": 1}'
        assert is_valid_signature(body, _sign(body)) is True

    @given(body=st.binary(max_size=256), flip=st.integers(min_value=0, max_value=255))
    def test_any_single_byte_change_is_rejected(self, body, flip):
        sig = _sign(body)
        tampered = body + bytes([flip]) if not body else bytes([body[0] ^ (flip or 1)]) + body[1:]
        assert is_valid_signature(tampered, sig, SECRET) is False

    @given(body=st.binary(max_size=256), key=st.text(min_size=1, max_size=32))
    def test_signature_under_another_key_is_rejected(self, body, key):
        if key == SECRET:
            return
        assert is_valid_signature(body, _sign(body, key), SECRET) is False


class TestVerifySignature:

    def test_valid_passes(self):
        body = b"{}"
        verify_signature(body, _sign(body), SECRET)

    def test_missing_raises(self):
        with pytest.raises(AuthenticationError):
            verify_signature(b"{}", None, SECRET)

    def test_invalid_raises_401(self):
        with pytest.raises(AuthenticationError) as exc_info:
            verify_signature(b"{}", "bm90LWEtc2lnbmF0dXJl", SECRET)
        assert exc_info.value.status_code == 401


class TestSignJson:

    def test_signature_covers_exact_bytes(self):
        body, sig = sign_json({"id": "p1", "title": "Tee"}, SECRET)
        assert sig == _sign(body)
        assert json.loads(body) == {"id": "p1", "title": "Tee"}

    def test_compact_serialization(self):
        body, _ = sign_json({"a": 1, "b": [1, 2]}, SECRET)
        assert body == b'{"a":1,"b":[1,2]}'
