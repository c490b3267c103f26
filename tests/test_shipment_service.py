"""Tests for the shipment lifecycle against a mocked Shiprocket client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from orderhub.errors import BadRequestError, NotFoundError
from orderhub.orders.models import OrderStatus
from orderhub.shipping.client import ShiprocketClient
from orderhub.shipping.models import ShipmentStatus
from orderhub.shipping.service import ShipmentService, build_shiprocket_order

from conftest import stock_of, success_payload


@pytest.fixture()
def client() -> MagicMock:
    client = MagicMock(spec=ShiprocketClient)
    client.create_order.return_value = {"order_id": 7001, "shipment_id": 8001}
    client.get_available_couriers.return_value = {"data": {"available_courier_companies": [
        {"courier_company_id": 10, "courier_name": "Slow Express", "rate": 95.0},
        {"courier_company_id": 24, "courier_name": "Cheap Post", "rate": 62.5},
    ]}}
    client.assign_courier.return_value = {"response": {"data": {"awb_code": "AWB900", "courier_name": "Cheap Post"}}}
    client.track_shipment.return_value = {"tracking_data": {"track_status": 1}}
    return client


@pytest.fixture()
def shipments(store, orders, client, settings) -> ShipmentService:
    return ShipmentService(store, orders, client, settings)


@pytest.fixture()
def order(orders):
    return orders.create_order_from_webhook(success_payload())


class TestCreateShipment:

    def test_creates_record_with_weight(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        assert shipment.order_id == order.id
        assert shipment.weight == 1.0
        assert shipment.is_cod is False
        assert shipment.status == ShipmentStatus.PENDING

    def test_idempotent_per_order(self, shipments, order):
        first = shipments.create_shipment_from_order(order.id)
        second = shipments.create_shipment_from_order(order.id)
        assert first.id == second.id

    def test_cod_when_payment_pending(self, shipments, orders):
        cod = orders.create_order_from_webhook(success_payload("SR-COD", payment_type="COD"))
        assert shipments.create_shipment_from_order(cod.id).is_cod is True

    def test_cancelled_order_cannot_ship(self, shipments, orders, order):
        orders.cancel_order(order.id, "x")
        with pytest.raises(BadRequestError):
            shipments.create_shipment_from_order(order.id)

    def test_unknown_order(self, shipments):
        with pytest.raises(NotFoundError):
            shipments.create_shipment_from_order("nope")


class TestShiprocketOrder:

    def test_payload_shape(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        payload = build_shiprocket_order(order, shipment, "Primary")
        assert payload["order_id"] == order.order_number
        assert payload["billing_customer_name"] == "Asha"
        assert payload["billing_last_name"] == "Rao"
        assert payload["shipping_is_billing"] is True
        assert payload["payment_method"] == "Prepaid"
        assert payload["sub_total"] == 200.0
        assert payload["order_items"][0] == {"name": "Classic Tee", "sku": "TEE-M-BLK", "units": 2, "selling_price": 100.0}
        assert (payload["length"], payload["breadth"], payload["height"]) == (10.0, 10.0, 10.0)

    def test_creates_and_moves_order_to_processing(self, shipments, orders, client, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipment = shipments.create_shiprocket_order(shipment.id)

        assert shipment.shiprocket_order_id == "7001"
        assert shipment.shiprocket_shipment_id == "8001"
        refreshed = orders.get_order(order.id)
        assert refreshed.order_status == OrderStatus.PROCESSING
        assert refreshed.shiprocket_shipment_id == "8001"

    def test_not_created_twice(self, shipments, client, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipments.create_shiprocket_order(shipment.id)
        shipments.create_shiprocket_order(shipment.id)
        client.create_order.assert_called_once()


class TestCourierAndPickup:

    def _ready(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        return shipments.create_shiprocket_order(shipment.id)

    def test_cheapest_courier_selected(self, shipments, orders, client, order):
        shipment = shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id)

        client.assign_courier.assert_called_once_with(8001, 24)
        assert shipment.awb_code == "AWB900"
        assert shipment.courier_name == "Cheap Post"
        assert orders.get_order(order.id).tracking_number == "AWB900"

    def test_explicit_courier(self, shipments, client, order):
        shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id, courier_id=10)
        client.get_available_couriers.assert_not_called()
        client.assign_courier.assert_called_once_with(8001, 10)

    def test_no_courier_available(self, shipments, client, order):
        client.get_available_couriers.return_value = {"data": {"available_courier_companies": []}}
        with pytest.raises(BadRequestError, match="No courier"):
            shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id)

    def test_requires_shiprocket_order(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        with pytest.raises(BadRequestError):
            shipments.assign_courier_and_generate_awb(shipment.id)

    def test_pickup_requires_awb(self, shipments, order):
        with pytest.raises(BadRequestError):
            shipments.schedule_pickup(self._ready(shipments, order).id)

    def test_pickup(self, shipments, client, order):
        shipment = shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id)
        shipment = shipments.schedule_pickup(shipment.id)
        client.generate_pickup.assert_called_once_with(8001)
        assert shipment.status == ShipmentStatus.PICKUP_SCHEDULED
        assert shipment.pickup_scheduled_date is not None

    def test_track(self, shipments, client, order):
        shipment = shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id)
        assert shipments.track_shipment(shipment.id) == {"tracking_data": {"track_status": 1}}
        client.track_shipment.assert_called_once_with("AWB900")

    def test_track_requires_awb(self, shipments, order):
        with pytest.raises(BadRequestError):
            shipments.track_shipment(self._ready(shipments, order).id)

    def test_cancel_releases_awb_and_restores_stock(self, shipments, orders, client, store, order):
        shipment = shipments.assign_courier_and_generate_awb(self._ready(shipments, order).id)
        shipment = shipments.cancel_shipment(shipment.id)

        client.cancel_shipments.assert_called_once_with(["AWB900"])
        assert shipment.status == ShipmentStatus.CANCELLED
        assert orders.get_order(order.id).order_status == OrderStatus.CANCELLED
        assert stock_of(store, "var-1") == 10

        shipments.cancel_shipment(shipment.id)
        client.cancel_shipments.assert_called_once()

    def test_cancel_without_awb_skips_shiprocket(self, shipments, client, order):
        shipment = shipments.cancel_shipment(shipments.create_shipment_from_order(order.id).id)
        client.cancel_shipments.assert_not_called()
        assert shipment.status == ShipmentStatus.CANCELLED

    def test_delivered_cannot_be_cancelled(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipments.update_shipment_status(shipment.id, ShipmentStatus.DELIVERED)
        with pytest.raises(BadRequestError):
            shipments.cancel_shipment(shipment.id)


class TestUpdateShipmentStatus:

    def test_in_transit_ships_order(self, shipments, orders, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipment = shipments.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT, {"location": "Delhi hub"})

        assert shipment.shipped_date is not None
        assert shipment.tracking_history[-1]["status"] == "IN_TRANSIT"
        assert shipment.tracking_history[-1]["location"] == "Delhi hub"
        assert orders.get_order(order.id).order_status == OrderStatus.SHIPPED

    def test_delivered(self, shipments, orders, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipment = shipments.update_shipment_status(shipment.id, ShipmentStatus.DELIVERED)
        assert shipment.delivered_date is not None
        assert orders.get_order(order.id).order_status == OrderStatus.DELIVERED

    def test_rto_returns_order(self, shipments, orders, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipment = shipments.update_shipment_status(shipment.id, ShipmentStatus.RTO_INITIATED)
        assert shipment.rto_initiated_date is not None
        assert orders.get_order(order.id).order_status == OrderStatus.RETURNED

    def test_cancelled_restores_stock(self, shipments, store, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipments.update_shipment_status(shipment.id, ShipmentStatus.CANCELLED)
        assert stock_of(store, "var-1") == 10

    def test_stale_status_keeps_order(self, shipments, orders, order):
        shipment = shipments.create_shipment_from_order(order.id)
        shipments.update_shipment_status(shipment.id, ShipmentStatus.DELIVERED)
        shipment = shipments.update_shipment_status(shipment.id, ShipmentStatus.IN_TRANSIT)
        assert shipment.status == ShipmentStatus.IN_TRANSIT
        assert orders.get_order(order.id).order_status == OrderStatus.DELIVERED

    def test_lookup(self, shipments, order):
        shipment = shipments.create_shipment_from_order(order.id)
        assert shipments.get_shipment_by_order(order.id).id == shipment.id
        with pytest.raises(NotFoundError):
            shipments.get_shipment("nope")
        with pytest.raises(NotFoundError):
            shipments.get_shipment_by_order("nope")
