"""Classify an inbound Shiprocket payload into one domain event kind.

Resolution order:
1. explicit ``event`` field (uppercased) wins outright
2. top-level ``status`` checked against the checkout status vocabulary
3. any ``shipment_status`` means a shipment status update
4. otherwise UNKNOWN
"""

from __future__ import annotations

from enum import Enum

from orderhub.webhooks.payload import ShiprocketWebhookPayload


class EventKind(str, Enum):
    ORDER_SUCCESS = "ORDER_SUCCESS"
    ORDER_FAILED = "ORDER_FAILED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_STATUS_UPDATE = "ORDER_STATUS_UPDATE"
    ORDER_INITIATED = "ORDER_INITIATED"
    UNKNOWN = "UNKNOWN"


# Checkout status vocabulary -> event kind
_STATUS_EVENTS: dict[str, EventKind] = {
    "SUCCESS": EventKind.ORDER_SUCCESS,
    "FAILED": EventKind.ORDER_FAILED,
    "CANCELLED": EventKind.ORDER_CANCELLED,
    "INITIATED": EventKind.ORDER_INITIATED,
}

SUCCESS_STATUS = "SUCCESS"


def classify(payload: ShiprocketWebhookPayload) -> EventKind:
    """Return the event kind for ``payload``."""
    if payload.event:
        try:
            return EventKind(payload.event.upper())
        except ValueError:
            return EventKind.UNKNOWN

    if payload.status:
        kind = _STATUS_EVENTS.get(payload.status.upper())
        if kind is not None:
            return kind

    if payload.shipment_status:
        return EventKind.ORDER_STATUS_UPDATE

    return EventKind.UNKNOWN
