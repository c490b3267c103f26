"""Shiprocket webhook signatures: base64 HMAC-SHA256 over the raw body.

Security contract:
- Verification runs on the raw request bytes, before any JSON parsing;
  parsing and re-serializing can reorder keys or change whitespace
- Comparison uses hmac.compare_digest() (constant time)
- Missing signature header -> AuthenticationError
- Missing secret -> AuthenticationError (fail-closed)
- Outbound bodies are serialized once and the exact bytes are both
  signed and sent
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from typing import Any

from orderhub.config import settings
from orderhub.errors import AuthenticationError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Api-HMAC-SHA256"


def compute_signature(body: bytes, secret: str) -> str:
    """Return base64(HMAC-SHA256(secret, body))."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def is_valid_signature(body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """True if ``signature`` matches the HMAC of ``body``."""
    secret = settings.shiprocket_webhook_secret if secret is None else secret
    if not secret:
        logger.warning("SHIPROCKET_WEBHOOK_SECRET not set, rejecting webhook")
        return False
    if not signature:
        return False
    return hmac.compare_digest(compute_signature(body, secret), signature.strip())


def verify_signature(body: bytes, signature: str | None, secret: str | None = None) -> None:
    """Raise AuthenticationError unless ``signature`` is valid for ``body``."""
    if not signature:
        raise AuthenticationError("Missing webhook signature")
    if not is_valid_signature(body, signature, secret):
        raise AuthenticationError("Invalid webhook signature")


def sign_json(data: Any, secret: str) -> tuple[bytes, str]:
    """Serialize ``data`` once and sign those bytes.

    Returns:
        (body, signature): send ``body`` verbatim with ``signature`` in
        the X-Api-HMAC-SHA256 header.
    """
    body = json.dumps(data, separators=(",", ":"), default=str).encode("utf-8")
    return body, compute_signature(body, secret)
