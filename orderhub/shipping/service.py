"""Shipment lifecycle for confirmed orders.

Steps: create the local shipment record -> create the Shiprocket order
-> assign a courier and get an AWB -> schedule pickup.  Status scans
then flow back through update_shipment_status(), which keeps the order
status in step.  Shiprocket calls always happen outside storage
transactions.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from orderhub.config import Settings
from orderhub.errors import BadRequestError, DuplicateKeyError, NotFoundError
from orderhub.orders.models import Address, Order, OrderStatus, PaymentStatus
from orderhub.orders.service import OrderService
from orderhub.serialization import utcnow
from orderhub.shipping.client import ShiprocketClient
from orderhub.shipping.models import Shipment, ShipmentStatus
from orderhub.storage.base import Store
from orderhub.webhooks.status_map import map_shipment_to_order_status

logger = logging.getLogger(__name__)

WEIGHT_PER_UNIT_KG = 0.5
_SHIPPABLE = (OrderStatus.CONFIRMED, OrderStatus.PROCESSING)


def _split_name(name: str) -> tuple[str, str]:
    first, _, last = name.strip().partition(" ")
    return first, last.strip()


def _same_address(a: Address, b: Address) -> bool:
    return (a.line1, a.city, a.pincode) == (b.line1, b.city, b.pincode)


def build_shiprocket_order(order: Order, shipment: Shipment, pickup_location: str) -> dict[str, Any]:
    """The /orders/create/adhoc body for ``order``."""
    billing, shipping = order.billing_address, order.shipping_address
    billing_first, billing_last = _split_name(billing.name)
    shipping_first, shipping_last = _split_name(shipping.name)
    return {
        "order_id": order.order_number,
        "order_date": date.today().isoformat(),
        "pickup_location": pickup_location,
        "billing_customer_name": billing_first,
        "billing_last_name": billing_last,
        "billing_address": billing.line1,
        "billing_address_2": billing.line2,
        "billing_city": billing.city,
        "billing_pincode": billing.pincode,
        "billing_state": billing.state,
        "billing_country": billing.country,
        "billing_email": billing.email or shipping.email,
        "billing_phone": billing.phone,
        "shipping_is_billing": _same_address(shipping, billing),
        "shipping_customer_name": shipping_first,
        "shipping_last_name": shipping_last,
        "shipping_address": shipping.line1,
        "shipping_address_2": shipping.line2,
        "shipping_city": shipping.city,
        "shipping_pincode": shipping.pincode,
        "shipping_country": shipping.country,
        "shipping_state": shipping.state,
        "shipping_email": shipping.email,
        "shipping_phone": shipping.phone,
        "order_items": [
            {
                "name": item.product_name,
                "sku": item.sku,
                "units": item.quantity,
                "selling_price": item.price,
            }
            for item in order.items
        ],
        "payment_method": "COD" if shipment.is_cod else "Prepaid",
        "sub_total": order.pricing.subtotal,
        "length": shipment.dimensions.length,
        "breadth": shipment.dimensions.breadth,
        "height": shipment.dimensions.height,
        "weight": shipment.weight,
    }


class ShipmentService:

    def __init__(self, store: Store, orders: OrderService, client: ShiprocketClient, settings: Settings):
        self._store = store
        self._orders = orders
        self._client = client
        self._settings = settings

    def _require(self, shipment_id: str) -> Shipment:
        shipment = self._store.shipments.get(shipment_id)
        if shipment is None:
            raise NotFoundError(f"Shipment {shipment_id} not found")
        return shipment

    def get_shipment(self, shipment_id: str) -> Shipment:
        return self._require(shipment_id)

    def get_shipment_by_order(self, order_id: str) -> Shipment:
        shipment = self._store.shipments.get_by_order(order_id)
        if shipment is None:
            raise NotFoundError(f"No shipment for order {order_id}")
        return shipment

    def create_shipment_from_order(self, order_id: str) -> Shipment:
        """Create the local shipment record; returns the existing one if present."""
        order = self._orders.get_order(order_id)
        if order.order_status not in _SHIPPABLE:
            raise BadRequestError(
                f"Order {order.order_number} must be confirmed before shipping "
                f"(is {order.order_status.value})"
            )
        existing = self._store.shipments.get_by_order(order_id)
        if existing is not None:
            return existing

        shipment = Shipment(
            order_id=order.id,
            weight=round(sum(WEIGHT_PER_UNIT_KG * i.quantity for i in order.items), 2),
            is_cod=order.payment_status == PaymentStatus.PENDING,
        )
        try:
            self._store.shipments.create(shipment)
        except DuplicateKeyError:
            return self._store.shipments.get_by_order(order_id)
        logger.info("Shipment %s created for order %s", shipment.id, order.order_number)
        return shipment

    def create_shiprocket_order(self, shipment_id: str) -> Shipment:
        shipment = self._require(shipment_id)
        if shipment.shiprocket_order_id:
            return shipment
        order = self._orders.get_order(shipment.order_id)

        payload = build_shiprocket_order(order, shipment, self._settings.shiprocket_pickup_location)
        response = self._client.create_order(payload)

        shipment.shiprocket_order_id = str(response["order_id"])
        shipment.shiprocket_shipment_id = str(response["shipment_id"])
        self._store.shipments.update(shipment)

        self._orders.update_tracking_info(order.id, None, shipment.shiprocket_shipment_id)
        if order.order_status == OrderStatus.CONFIRMED:
            self._orders.update_order_status(order.id, OrderStatus.PROCESSING)
        logger.info(
            "Shiprocket order %s created for %s", shipment.shiprocket_order_id, order.order_number
        )
        return shipment

    def _cheapest_courier(self, shipment: Shipment) -> int:
        order = self._orders.get_order(shipment.order_id)
        response = self._client.get_available_couriers(
            pickup_postcode=self._settings.shiprocket_pickup_pincode,
            delivery_postcode=order.shipping_address.pincode,
            weight=shipment.weight,
            cod=shipment.is_cod,
            order_amount=order.pricing.total if shipment.is_cod else None,
        )
        companies = (response.get("data") or {}).get("available_courier_companies") or []
        if not companies:
            raise BadRequestError(
                f"No courier serves pincode {order.shipping_address.pincode}"
            )
        best = min(companies, key=lambda c: float(c.get("rate", float("inf"))))
        logger.info("Selected courier %s at rate %s", best.get("courier_name"), best.get("rate"))
        return int(best["courier_company_id"])

    def assign_courier_and_generate_awb(self, shipment_id: str, courier_id: int | None = None) -> Shipment:
        """Assign ``courier_id`` (or the cheapest serviceable courier) and store the AWB."""
        shipment = self._require(shipment_id)
        if not shipment.shiprocket_shipment_id:
            raise BadRequestError("Shiprocket order must be created first")

        if courier_id is None:
            courier_id = self._cheapest_courier(shipment)
        response = self._client.assign_courier(int(shipment.shiprocket_shipment_id), courier_id)
        data = (response.get("response") or {}).get("data") or {}
        if not data.get("awb_code"):
            raise BadRequestError(f"Shiprocket did not assign an AWB for shipment {shipment.id}")

        shipment.awb_code = str(data["awb_code"])
        shipment.courier_id = str(courier_id)
        shipment.courier_name = data.get("courier_name")
        self._store.shipments.update(shipment)
        self._orders.update_tracking_info(shipment.order_id, shipment.awb_code)
        logger.info("AWB %s assigned to shipment %s", shipment.awb_code, shipment.id)
        return shipment

    def schedule_pickup(self, shipment_id: str) -> Shipment:
        shipment = self._require(shipment_id)
        if not shipment.awb_code:
            raise BadRequestError("AWB must be generated before scheduling pickup")
        self._client.generate_pickup(int(shipment.shiprocket_shipment_id))
        return self.update_shipment_status(shipment.id, ShipmentStatus.PICKUP_SCHEDULED)

    def track_shipment(self, shipment_id: str) -> dict[str, Any]:
        shipment = self._require(shipment_id)
        if not shipment.awb_code:
            raise BadRequestError("Shipment has not been assigned an AWB yet")
        return self._client.track_shipment(shipment.awb_code)

    def cancel_shipment(self, shipment_id: str) -> Shipment:
        """Cancel the AWB with Shiprocket (if one was issued) and cancel the order.

        Cancelling an already-cancelled shipment returns it unchanged.
        """
        shipment = self._require(shipment_id)
        if shipment.status == ShipmentStatus.CANCELLED:
            return shipment
        if shipment.status in (ShipmentStatus.DELIVERED, ShipmentStatus.RTO_DELIVERED):
            raise BadRequestError(f"Shipment {shipment.id} is {shipment.status.value} and cannot be cancelled")
        if shipment.awb_code:
            self._client.cancel_shipments([shipment.awb_code])
        logger.info("Shipment %s cancelled (awb=%s)", shipment.id, shipment.awb_code or "-")
        return self.update_shipment_status(shipment.id, ShipmentStatus.CANCELLED)

    def update_shipment_status(
        self,
        shipment_id: str,
        status: ShipmentStatus,
        event: dict[str, Any] | None = None,
    ) -> Shipment:
        """Record a shipment status and move the order along with it."""
        shipment = self._require(shipment_id)
        status = ShipmentStatus(status)
        now = utcnow()
        shipment.status = status
        if status == ShipmentStatus.PICKUP_SCHEDULED:
            shipment.pickup_scheduled_date = now
        elif status == ShipmentStatus.IN_TRANSIT and shipment.shipped_date is None:
            shipment.shipped_date = now
        elif status == ShipmentStatus.DELIVERED:
            shipment.delivered_date = now
        elif status == ShipmentStatus.RTO_INITIATED:
            shipment.rto_initiated_date = now
        shipment.tracking_history.append({"status": status.value, "at": now.isoformat(), **(event or {})})
        self._store.shipments.update(shipment)

        target = map_shipment_to_order_status(status)
        try:
            self._orders.update_order_status(shipment.order_id, target)
        except BadRequestError as exc:
            logger.warning("Shipment %s is %s but order not moved: %s", shipment.id, status.value, exc.message)
        return shipment
