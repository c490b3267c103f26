"""Tests for order reconciliation from checkout webhooks and the order lifecycle."""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from orderhub.errors import BadRequestError, InsufficientStockError, NotFoundError
from orderhub.orders.models import OrderFilters, OrderStatus, PaymentStatus

from conftest import stock_of, success_payload


# ── Creation ──────────────────────────────────────────────────────────────


class TestCreateOrderFromWebhook:

    def test_creates_confirmed_order_and_takes_stock(self, store, orders, mailer):
        order = orders.create_order_from_webhook(success_payload())

        assert order.external_order_id == "SR-1001"
        assert order.order_number.startswith("ORD")
        assert order.order_status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.pricing.subtotal == 200.0
        assert order.pricing.total == 200.0
        assert stock_of(store, "var-1") == 8
        assert store.orders.get(order.id) is not None
        mailer.dispatch.assert_called_once()
        assert mailer.dispatch.call_args[0][:2] == ("order_confirmation", "asha@example.com")

    def test_items_are_snapshotted(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        item = order.items[0]
        assert item.variant_id == "var-1"
        assert item.product_name == "Classic Tee"
        assert item.sku == "TEE-M-BLK"
        assert item.subtotal == 200.0
        assert item.attributes.color_name == "Black"
        assert item.image == "https://cdn.test/tee.jpg"

    def test_address_and_contact_fallbacks(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert order.shipping_address.name == "Asha Rao"
        assert order.shipping_address.phone == "9876543210"
        assert order.shipping_address.email == "asha@example.com"
        assert order.shipping_address.country == "India"
        assert order.billing_address == order.shipping_address

    def test_replay_returns_same_order_without_touching_stock(self, store, orders, mailer):
        first = orders.create_order_from_webhook(success_payload())
        second = orders.create_order_from_webhook(success_payload())

        assert second.id == first.id
        assert stock_of(store, "var-1") == 8
        assert mailer.dispatch.call_count == 1

    def test_insufficient_stock_creates_nothing(self, store, orders):
        payload = success_payload(cart_data={"items": [
            {"variant_id": "SRV-1", "quantity": 1},
            {"variant_id": "SRV-2", "quantity": 2},
        ]})
        with pytest.raises(InsufficientStockError):
            orders.create_order_from_webhook(payload)

        assert store.orders.get_by_external_id("SR-1001") is None
        assert stock_of(store, "var-1") == 10
        assert stock_of(store, "var-2") == 1

    def test_unknown_variant_is_not_found(self, orders):
        payload = success_payload(cart_data={"items": [{"variant_id": "SRV-404", "quantity": 1}]})
        with pytest.raises(NotFoundError):
            orders.create_order_from_webhook(payload)

    def test_variant_without_shiprocket_id_cannot_be_ordered(self, orders):
        payload = success_payload(cart_data={"items": [{"variant_id": "var-3", "quantity": 1}]})
        with pytest.raises(NotFoundError):
            orders.create_order_from_webhook(payload)

    def test_empty_cart_rejected(self, orders):
        with pytest.raises(BadRequestError, match="empty cart"):
            orders.create_order_from_webhook(success_payload(cart_data={"items": []}))

    def test_non_success_status_rejected(self, orders):
        with pytest.raises(BadRequestError):
            orders.create_order_from_webhook(success_payload(status="FAILED"))

    def test_missing_order_id_rejected(self, orders):
        with pytest.raises(BadRequestError, match="order_id"):
            orders.create_order_from_webhook(success_payload(order_id=None))

    def test_cod_payment_stays_pending(self, orders):
        order = orders.create_order_from_webhook(success_payload(payment_type="COD", payment_status=None))
        assert order.payment_status == PaymentStatus.PENDING

    def test_provider_total_wins_on_mismatch(self, orders, caplog):
        with caplog.at_level(logging.WARNING, logger="orderhub.orders.pricing"):
            order = orders.create_order_from_webhook(success_payload(total_amount_payable=150))
        assert order.pricing.total == 150.0
        assert "Price mismatch" in caplog.text

    def test_coupon_is_recorded(self, orders):
        order = orders.create_order_from_webhook(success_payload(
            coupon_codes=["WELCOME10"], coupon_discount=20, total_amount_payable=180,
        ))
        assert order.applied_coupon.code == "WELCOME10"
        assert order.applied_coupon.discount == 20.0
        assert order.pricing.total == 180.0

    def test_mail_failure_does_not_fail_order(self, store, orders, mailer):
        mailer.dispatch.side_effect = RuntimeError("smtp down")
        order = orders.create_order_from_webhook(success_payload())
        assert store.orders.get(order.id) is not None


class TestConcurrentCreation:

    def test_losing_insert_returns_winner(self, store, orders):
        winner = orders.create_order_from_webhook(success_payload())
        # Second delivery passes the read-before-insert check, then loses on the unique key
        with patch.object(store.orders, "get_by_external_id", side_effect=[None, winner]):
            result = orders.create_order_from_webhook(success_payload())

        assert result.id == winner.id
        assert stock_of(store, "var-1") == 8

    @patch("orderhub.orders.service.generate_order_number")
    def test_order_number_collision_regenerates(self, mock_number, store, orders):
        mock_number.side_effect = ["ORD-FIXED", "ORD-FIXED", "ORD-NEXT"]
        first = orders.create_order_from_webhook(success_payload("SR-1"))
        second = orders.create_order_from_webhook(success_payload("SR-2"))

        assert first.order_number == "ORD-FIXED"
        assert second.order_number == "ORD-NEXT"
        assert stock_of(store, "var-1") == 6


# ── Lifecycle ─────────────────────────────────────────────────────────────


class TestCancelOrder:

    def test_cancel_restores_stock_once(self, store, orders, mailer):
        order = orders.create_order_from_webhook(success_payload())

        cancelled = orders.cancel_order(order.id, "Customer changed mind", cancelled_by="customer")
        again = orders.cancel_order(order.id, "Duplicate cancel")

        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert again.cancellation_reason == "Customer changed mind"
        assert stock_of(store, "var-1") == 10
        templates = [c[0][0] for c in mailer.dispatch.call_args_list]
        assert templates.count("order_cancelled") == 1

    def test_cannot_cancel_delivered(self, store, orders):
        order = orders.create_order_from_webhook(success_payload())
        orders.update_order_status(order.id, OrderStatus.DELIVERED)
        with pytest.raises(BadRequestError):
            orders.cancel_order(order.id, "too late")
        assert stock_of(store, "var-1") == 8

    def test_unknown_order(self, orders):
        with pytest.raises(NotFoundError):
            orders.cancel_order("nope", "x")


class TestUpdateOrderStatus:

    def test_forward_skip_allowed(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert orders.update_order_status(order.id, OrderStatus.SHIPPED).order_status == OrderStatus.SHIPPED

    def test_backward_move_rejected(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        orders.update_order_status(order.id, OrderStatus.SHIPPED)
        with pytest.raises(BadRequestError, match="Invalid status transition"):
            orders.update_order_status(order.id, OrderStatus.CONFIRMED)

    def test_same_status_is_noop(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert orders.update_order_status(order.id, OrderStatus.CONFIRMED).order_status == OrderStatus.CONFIRMED

    def test_delivered_sets_timestamp_and_is_terminal(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        delivered = orders.update_order_status(order.id, OrderStatus.DELIVERED)
        assert delivered.delivered_at is not None
        assert delivered.is_terminal
        with pytest.raises(BadRequestError):
            orders.update_order_status(order.id, OrderStatus.RETURNED)

    def test_cancelled_goes_through_cancel(self, store, orders):
        order = orders.create_order_from_webhook(success_payload())
        orders.update_order_status(order.id, OrderStatus.CANCELLED)
        assert stock_of(store, "var-1") == 10


class TestOrderUpdates:

    def test_tracking_info(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        updated = orders.update_tracking_info(order.id, "AWB123", "SHIP9")
        assert updated.tracking_number == "AWB123"
        assert updated.shiprocket_shipment_id == "SHIP9"
        kept = orders.update_tracking_info(order.id, None)
        assert kept.tracking_number == "AWB123"

    def test_payment_status(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert orders.update_payment_status(order.id, PaymentStatus.FAILED).payment_status == PaymentStatus.FAILED

    def test_notes_and_user_link(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        orders.add_notes(order.id, "gift wrap")
        linked = orders.link_order_to_user(order.id, "user-7")
        assert linked.notes == "gift wrap"
        assert linked.user_id == "user-7"

    def test_link_guest_orders_by_email(self, orders):
        orders.create_order_from_webhook(success_payload("SR-1"))
        orders.create_order_from_webhook(success_payload("SR-2", email="other@example.com"))
        assert orders.link_guest_orders_by_email("ASHA@example.com", "user-1") == 1
        listed = orders.list_orders(OrderFilters(user_id="user-1"))
        assert listed["total"] == 1

    def test_link_guest_orders_requires_email(self, orders):
        with pytest.raises(BadRequestError):
            orders.link_guest_orders_by_email("", "user-1")


class TestQueries:

    def test_get_by_number(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert orders.get_order_by_number(order.order_number).id == order.id
        with pytest.raises(NotFoundError):
            orders.get_order_by_number("ORD0")

    def test_list_pagination(self, orders):
        for i in range(3):
            orders.create_order_from_webhook(success_payload(f"SR-{i}"))
        page = orders.list_orders(page=2, limit=2)
        assert page["total"] == 3
        assert page["pages"] == 2
        assert len(page["orders"]) == 1

    def test_list_filters_by_status(self, orders):
        a = orders.create_order_from_webhook(success_payload("SR-A"))
        orders.create_order_from_webhook(success_payload("SR-B"))
        orders.update_order_status(a.id, OrderStatus.SHIPPED)
        result = orders.list_orders(OrderFilters(order_status=OrderStatus.SHIPPED))
        assert [o.id for o in result["orders"]] == [a.id]

    def test_search(self, orders):
        order = orders.create_order_from_webhook(success_payload())
        assert [o.id for o in orders.search_orders("asha")] == [order.id]
        assert orders.search_orders("SR-1001")[0].id == order.id
        with pytest.raises(BadRequestError):
            orders.search_orders("  ")

    def test_stats(self, orders):
        a = orders.create_order_from_webhook(success_payload("SR-A"))
        b = orders.create_order_from_webhook(success_payload("SR-B"))
        orders.create_order_from_webhook(success_payload("SR-C"))
        orders.update_order_status(a.id, OrderStatus.DELIVERED)
        orders.cancel_order(b.id, "x")

        stats = orders.get_order_stats()
        assert stats.total_orders == 3
        assert stats.delivered_orders == 1
        assert stats.cancelled_orders == 1
        assert stats.pending_orders == 1
        assert stats.total_revenue == 400.0

    def test_recent_orders_and_external_lookup(self, orders):
        ids = {orders.create_order_from_webhook(success_payload(f"SR-{i}")).id for i in range(3)}
        recent = orders.get_recent_orders(limit=2)
        assert len(recent) == 2
        assert {o.id for o in recent} <= ids
        assert orders.get_order_by_external_id("SR-1").external_order_id == "SR-1"
        assert orders.get_order_by_external_id("SR-404") is None
