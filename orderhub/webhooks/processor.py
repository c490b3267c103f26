"""Inbound Shiprocket webhook processing.

Flow per delivery:
1. Verify the signature over the raw body (AuthenticationError -> 401)
2. Parse and validate the payload (BadRequestError -> 400)
3. Classify into an EventKind
4. Apply the event through the order reconciler

Acknowledgement contract:
- Events for orders we do not know are acknowledged, not failed
- INITIATED and UNKNOWN events are acknowledged without side effects
- Stale or backward shipment statuses are acknowledged and logged
- Not-found and validation errors on order creation propagate so
  Shiprocket re-delivers
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from orderhub.errors import BadRequestError
from orderhub.orders.models import Order, PaymentStatus
from orderhub.orders.service import OrderService
from orderhub.webhooks.classifier import EventKind, classify
from orderhub.webhooks.payload import ShiprocketWebhookPayload, parse_payload
from orderhub.webhooks.status_map import map_shiprocket_status
from orderhub.webhooks.verification import verify_signature

logger = logging.getLogger(__name__)

DEFAULT_CANCEL_REASON = "Cancelled via Shiprocket"

# Delivery counter per event kind (in-memory, for the status endpoint)
_event_counts: dict[str, int] = {}


def _audit(kind: str, order_id: str | None, status: str) -> None:
    _event_counts[kind] = _event_counts.get(kind, 0) + 1
    logger.info(
        "WEBHOOK_AUDIT provider=shiprocket event=%s order=%s status=%s count=%d",
        kind,
        order_id or "-",
        status,
        _event_counts[kind],
    )


def event_counts() -> dict[str, int]:
    return dict(_event_counts)


def _order_result(order: Order) -> dict[str, Any]:
    return {"success": True, "order": order.to_dict()}


class WebhookProcessor:

    def __init__(self, orders: OrderService, secret: str | None = None):
        self._orders = orders
        self._secret = secret
        self._handlers: dict[EventKind, Callable[[ShiprocketWebhookPayload], dict[str, Any]]] = {
            EventKind.ORDER_SUCCESS: self._handle_success,
            EventKind.ORDER_FAILED: self._handle_failed,
            EventKind.ORDER_CANCELLED: self._handle_cancelled,
            EventKind.ORDER_STATUS_UPDATE: self._handle_status_update,
            EventKind.ORDER_INITIATED: self._handle_initiated,
            EventKind.UNKNOWN: self._handle_unknown,
        }

    def process(self, body: bytes, signature: str | None) -> dict[str, Any]:
        """Verify, parse, classify and apply one raw delivery."""
        try:
            verify_signature(body, signature, self._secret)
        except Exception:
            _audit("unknown", None, "signature_failed")
            raise

        payload = parse_payload(body)
        kind = classify(payload)
        try:
            result = self._handlers[kind](payload)
        except Exception as exc:
            _audit(kind.value, payload.order_id, f"failed:{type(exc).__name__}")
            raise
        _audit(kind.value, payload.order_id, "processed")
        return result

    def _find_order(self, payload: ShiprocketWebhookPayload) -> Order | None:
        if not payload.order_id:
            return None
        order = self._orders.get_order_by_external_id(payload.order_id)
        if order is None:
            logger.info("No order for Shiprocket order %s, acknowledging", payload.order_id)
        return order

    # ── Handlers ──────────────────────────────────────────────────────────

    def _handle_success(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        return _order_result(self._orders.create_order_from_webhook(payload))

    def _handle_failed(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        order = self._find_order(payload)
        if order is None:
            return {"acknowledged": True}
        order = self._orders.update_payment_status(order.id, PaymentStatus.FAILED)
        return _order_result(order)

    def _handle_cancelled(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        order = self._find_order(payload)
        if order is None:
            return {"acknowledged": True}
        reason = payload.reason or payload.cancellation_reason or DEFAULT_CANCEL_REASON
        return _order_result(self._orders.cancel_order(order.id, reason, cancelled_by="shiprocket"))

    def _handle_status_update(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        order = self._find_order(payload)
        if order is None:
            return {"acknowledged": True}

        target = map_shiprocket_status(payload.shipment_status)
        stale = False
        try:
            order = self._orders.update_order_status(order.id, target)
        except BadRequestError as exc:
            # Out-of-order or post-terminal scan; re-delivery would not help.
            logger.warning("Ignoring shipment status %r: %s", payload.shipment_status, exc.message)
            stale = True

        if payload.tracking_number or payload.shipment_id:
            order = self._orders.update_tracking_info(order.id, payload.tracking_number, payload.shipment_id)

        result = _order_result(order)
        if stale:
            result["stale"] = True
        return result

    def _handle_initiated(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        logger.info("Checkout initiated for Shiprocket order %s", payload.order_id or "-")
        return {"acknowledged": True}

    def _handle_unknown(self, payload: ShiprocketWebhookPayload) -> dict[str, Any]:
        logger.info(
            "Ignoring unrecognized Shiprocket webhook (event=%r status=%r)",
            payload.event,
            payload.status,
        )
        return {"ignored": True}
