"""Tests for inbound webhook processing: verify, parse, classify, apply."""

from __future__ import annotations

import json

import pytest

from orderhub.errors import AuthenticationError, BadRequestError, NotFoundError
from orderhub.orders.models import OrderStatus, PaymentStatus
from orderhub.webhooks.processor import WebhookProcessor, event_counts
from orderhub.webhooks.verification import sign_json

from conftest import SECRET, stock_of, success_body


@pytest.fixture()
def processor(orders) -> WebhookProcessor:
    return WebhookProcessor(orders, secret=SECRET)


def _deliver(processor: WebhookProcessor, data: dict) -> dict:
    body, signature = sign_json(data, SECRET)
    return processor.process(body, signature)


class TestProcessSecurity:

    def test_bad_signature_rejected_before_parsing(self, processor, store):
        body = json.dumps(success_body()).encode()
        with pytest.raises(AuthenticationError):
            processor.process(body, "forged")
        assert store.orders.get_by_external_id("SR-1001") is None

    def test_missing_signature(self, processor):
        with pytest.raises(AuthenticationError):
            processor.process(b"{}", None)

    def test_signed_garbage_is_bad_request(self, processor):
        from orderhub.webhooks.verification import compute_signature

        with pytest.raises(BadRequestError):
            processor.process(b"not-json", compute_signature(b"not-json", SECRET))

    def test_signature_failures_are_counted(self, processor):
        before = event_counts().get("unknown", 0)
        with pytest.raises(AuthenticationError):
            processor.process(b"{}", "forged")
        assert event_counts()["unknown"] == before + 1


class TestSuccessEvents:

    def test_success_creates_order(self, processor, store):
        result = _deliver(processor, success_body())
        assert result["success"] is True
        assert result["order"]["order_status"] == "CONFIRMED"
        assert result["order"]["pricing"]["total"] == 200.0
        assert stock_of(store, "var-1") == 8

    def test_replay_is_idempotent(self, processor, store):
        first = _deliver(processor, success_body())
        second = _deliver(processor, success_body())
        assert first["order"]["id"] == second["order"]["id"]
        assert stock_of(store, "var-1") == 8

    def test_unknown_variant_propagates(self, processor):
        with pytest.raises(NotFoundError):
            _deliver(processor, success_body(cart_data={"items": [{"variant_id": "nope", "quantity": 1}]}))


class TestFollowUpEvents:

    def test_failed_marks_payment(self, processor, store):
        _deliver(processor, success_body())
        result = _deliver(processor, {"order_id": "SR-1001", "status": "FAILED"})
        assert result["order"]["payment_status"] == PaymentStatus.FAILED.value

    def test_cancelled_restores_stock(self, processor, store):
        _deliver(processor, success_body())
        result = _deliver(processor, {"order_id": "SR-1001", "status": "CANCELLED", "reason": "RTO risk"})
        assert result["order"]["order_status"] == "CANCELLED"
        assert result["order"]["cancellation_reason"] == "RTO risk"
        assert result["order"]["cancelled_by"] == "shiprocket"
        assert stock_of(store, "var-1") == 10

    def test_cancelled_twice_restores_once(self, processor, store):
        _deliver(processor, success_body())
        _deliver(processor, {"order_id": "SR-1001", "event": "ORDER_CANCELLED"})
        _deliver(processor, {"order_id": "SR-1001", "event": "ORDER_CANCELLED"})
        assert stock_of(store, "var-1") == 10

    def test_events_for_unknown_orders_are_acknowledged(self, processor):
        for data in (
            {"order_id": "SR-X", "status": "FAILED"},
            {"order_id": "SR-X", "status": "CANCELLED"},
            {"order_id": "SR-X", "shipment_status": "DELIVERED"},
        ):
            assert _deliver(processor, data) == {"acknowledged": True}

    def test_status_update_moves_order_and_records_tracking(self, processor):
        _deliver(processor, success_body())
        result = _deliver(processor, {
            "order_id": "SR-1001",
            "shipment_status": "IN_TRANSIT",
            "tracking_number": "AWB777",
            "shipment_id": 5521,
        })
        assert result["order"]["order_status"] == OrderStatus.SHIPPED.value
        assert result["order"]["tracking_number"] == "AWB777"
        assert result["order"]["shiprocket_shipment_id"] == "5521"
        assert "stale" not in result

    def test_stale_status_is_acknowledged(self, processor):
        _deliver(processor, success_body())
        _deliver(processor, {"order_id": "SR-1001", "shipment_status": "DELIVERED"})
        result = _deliver(processor, {"order_id": "SR-1001", "shipment_status": "IN_TRANSIT"})
        assert result["stale"] is True
        assert result["order"]["order_status"] == "DELIVERED"

    def test_unknown_shipment_status_maps_to_processing(self, processor):
        _deliver(processor, success_body())
        result = _deliver(processor, {"order_id": "SR-1001", "shipment_status": "WEIGHED"})
        assert result["order"]["order_status"] == "PROCESSING"

    def test_shipment_cancelled_restores_stock(self, processor, store):
        _deliver(processor, success_body())
        _deliver(processor, {"order_id": "SR-1001", "shipment_status": "CANCELLED"})
        assert stock_of(store, "var-1") == 10

    def test_initiated_and_unknown(self, processor, store):
        assert _deliver(processor, {"order_id": "SR-9", "status": "INITIATED"}) == {"acknowledged": True}
        assert _deliver(processor, {"order_id": "SR-9", "status": "PENDING"}) == {"ignored": True}
        assert store.orders.get_by_external_id("SR-9") is None

    def test_status_update_with_null_cart(self, processor):
        _deliver(processor, success_body())
        result = _deliver(processor, {"order_id": "SR-1001", "shipment_status": "RTO", "cart_data": None})
        assert result["order"]["order_status"] == OrderStatus.RETURNED.value
