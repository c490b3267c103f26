"""Normalize Shiprocket webhook fragments into order fields."""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone

from orderhub.orders.models import Address, PaymentStatus
from orderhub.webhooks.payload import WebhookAddress

logger = logging.getLogger(__name__)

_PAID = {"SUCCESS", "PAID", "COMPLETED", "CAPTURED"}
_FAILED = {"FAILED", "FAILURE", "DECLINED"}


def generate_order_number(now_ms: int | None = None) -> str:
    """``ORD<epoch-ms><3-digit-random>``, e.g. ``ORD1717000000000042``."""
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    return f"ORD{now_ms}{secrets.randbelow(1000):03d}"


def _pick(*values: str | None) -> str:
    for value in values:
        if value:
            return value
    return ""


def normalize_address(raw: WebhookAddress | None, fallback: Address | None = None) -> Address:
    """Flatten a webhook address; each field falls back to ``fallback``, then "".

    The display name joins first and last name, then tries an explicit
    ``name`` field before the fallback.
    """
    fallback = fallback or Address()
    if raw is None:
        return fallback

    joined = " ".join(p for p in (raw.first_name, raw.last_name) if p)
    return Address(
        name=_pick(joined, raw.name, fallback.name),
        phone=_pick(raw.phone, fallback.phone),
        email=_pick(raw.email, fallback.email),
        line1=_pick(raw.line1, fallback.line1),
        line2=_pick(raw.line2, fallback.line2),
        city=_pick(raw.city, fallback.city),
        state=_pick(raw.state, fallback.state),
        pincode=_pick(raw.pincode, fallback.pincode),
        country=_pick(raw.country, fallback.country, "India"),
    )


def resolve_payment_status(payment_type: str | None, payment_status: str | None) -> PaymentStatus:
    """Map the checkout's payment fields onto PaymentStatus.

    Cash on delivery stays PENDING until the courier collects.
    """
    status = (payment_status or "").upper()
    if status in _FAILED:
        return PaymentStatus.FAILED
    if (payment_type or "").upper() in {"COD", "CASH_ON_DELIVERY"}:
        return PaymentStatus.PENDING
    if status in _PAID:
        return PaymentStatus.COMPLETED
    return PaymentStatus.PENDING


def parse_edd(edd: str | None) -> datetime | None:
    """Parse an estimated delivery date (ISO or DD-MM-YYYY).  Bad input -> None."""
    if not edd:
        return None
    for parse in (
        lambda s: datetime.fromisoformat(s.replace("Z", "+00:00")),
        lambda s: datetime.strptime(s, "%d-%m-%Y"),
        lambda s: datetime.strptime(s, "%d/%m/%Y"),
    ):
        try:
            parsed = parse(edd.strip())
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    logger.warning("Unparseable estimated delivery date %r, ignoring", edd)
    return None
