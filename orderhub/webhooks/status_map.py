"""Translate Shiprocket shipment statuses into internal order statuses.

Unknown statuses fall back to PROCESSING and log a warning; a status we
have not seen before must never fail a webhook.
"""

from __future__ import annotations

import logging

from orderhub.orders.models import OrderStatus
from orderhub.shipping.models import ShipmentStatus

logger = logging.getLogger(__name__)

DEFAULT_ORDER_STATUS = OrderStatus.PROCESSING

# Shiprocket webhook shipment_status vocabulary (incl. synonyms)
SHIPROCKET_STATUS_MAP: dict[str, OrderStatus] = {
    "PICKED_UP": OrderStatus.PROCESSING,
    "PICKUP_SCHEDULED": OrderStatus.PROCESSING,
    "MANIFESTED": OrderStatus.PROCESSING,
    "IN_TRANSIT": OrderStatus.SHIPPED,
    "DISPATCHED": OrderStatus.SHIPPED,
    "OUT_FOR_DELIVERY": OrderStatus.OUT_FOR_DELIVERY,
    "DELIVERED": OrderStatus.DELIVERED,
    "RTO": OrderStatus.RETURNED,
    "RETURNED": OrderStatus.RETURNED,
    "RTO_DELIVERED": OrderStatus.RETURNED,
    "CANCELLED": OrderStatus.CANCELLED,
}

# Our own shipment record statuses
_SHIPMENT_STATUS_MAP: dict[ShipmentStatus, OrderStatus] = {
    ShipmentStatus.PENDING: OrderStatus.PROCESSING,
    ShipmentStatus.PICKUP_SCHEDULED: OrderStatus.PROCESSING,
    ShipmentStatus.PICKED_UP: OrderStatus.PROCESSING,
    ShipmentStatus.IN_TRANSIT: OrderStatus.SHIPPED,
    ShipmentStatus.OUT_FOR_DELIVERY: OrderStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED: OrderStatus.DELIVERED,
    ShipmentStatus.RTO_INITIATED: OrderStatus.RETURNED,
    ShipmentStatus.RTO_DELIVERED: OrderStatus.RETURNED,
    ShipmentStatus.CANCELLED: OrderStatus.CANCELLED,
}


def map_shiprocket_status(shipment_status: str | None) -> OrderStatus:
    """Map a Shiprocket ``shipment_status`` (any case) to an OrderStatus."""
    key = (shipment_status or "").strip().upper().replace(" ", "_")
    status = SHIPROCKET_STATUS_MAP.get(key)
    if status is None:
        logger.warning(
            "Unknown Shiprocket shipment status %r, defaulting to %s",
            shipment_status,
            DEFAULT_ORDER_STATUS.value,
        )
        return DEFAULT_ORDER_STATUS
    return status


def map_shipment_to_order_status(status: ShipmentStatus) -> OrderStatus:
    return _SHIPMENT_STATUS_MAP.get(status, DEFAULT_ORDER_STATUS)
