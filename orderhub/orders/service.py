"""Order reconciler: applies Shiprocket checkout and shipment events to orders.

Idempotency contract:
- At most one order exists per external (Shiprocket) order id
- A repeat success webhook returns the stored order untouched and does
  not touch stock again
- Two concurrent first deliveries race on insert; the loser hits the
  unique constraint and returns the winner's order
- Order insert and stock decrement commit together or not at all
- Cancellation restores stock exactly once: only the call that moves
  the order into CANCELLED restores
"""

from __future__ import annotations

import logging
from typing import Any

from orderhub.errors import BadRequestError, DuplicateKeyError, InternalServerError, NotFoundError
from orderhub.inventory.ledger import StockLedger, StockMovement
from orderhub.notifications.mail import Mailer
from orderhub.orders.models import (
    Address,
    AppliedCoupon,
    ItemAttributes,
    Order,
    OrderFilters,
    OrderItem,
    OrderStats,
    OrderStatus,
    PaymentStatus,
    can_transition,
)
from orderhub.orders.normalize import (
    generate_order_number,
    normalize_address,
    parse_edd,
    resolve_payment_status,
)
from orderhub.orders.pricing import DEFAULT_TOLERANCE, compute_pricing
from orderhub.serialization import utcnow
from orderhub.storage.base import Store
from orderhub.webhooks.classifier import SUCCESS_STATUS
from orderhub.webhooks.payload import ShiprocketWebhookPayload

logger = logging.getLogger(__name__)

_ORDER_NUMBER_ATTEMPTS = 3


def _movements(order: Order) -> list[StockMovement]:
    return [StockMovement(item.variant_id, item.quantity) for item in order.items]


class OrderService:

    def __init__(
        self,
        store: Store,
        ledger: StockLedger,
        mailer: Mailer | None = None,
        price_tolerance: float = DEFAULT_TOLERANCE,
    ):
        self._store = store
        self._ledger = ledger
        self._mailer = mailer
        self._price_tolerance = price_tolerance

    # ── Webhook reconciliation ────────────────────────────────────────────

    def create_order_from_webhook(self, payload: ShiprocketWebhookPayload) -> Order:
        """Create the order for a successful checkout, or return the existing one.

        Raises:
            BadRequestError: status is not SUCCESS, order_id or cart missing,
                or a line item is out of stock (InsufficientStockError).
            NotFoundError: a cart variant or its product is unknown.
        """
        if (payload.status or "").upper() != SUCCESS_STATUS:
            raise BadRequestError(f"Cannot create order from checkout status {payload.status!r}")
        if not payload.order_id:
            raise BadRequestError("Webhook payload has no order_id")

        existing = self._store.orders.get_by_external_id(payload.order_id)
        if existing is not None:
            logger.info(
                "Order for Shiprocket order %s already exists (%s), skipping",
                payload.order_id,
                existing.order_number,
            )
            return existing

        order = self._build_order(payload)

        for attempt in range(1, _ORDER_NUMBER_ATTEMPTS + 1):
            try:
                with self._store.transaction():
                    self._store.orders.create(order)
                    self._ledger.decrement(_movements(order))
                break
            except DuplicateKeyError as exc:
                if exc.field == "external_order_id":
                    winner = self._store.orders.get_by_external_id(payload.order_id)
                    if winner is None:
                        raise InternalServerError(
                            f"Duplicate order {payload.order_id} reported but not found"
                        ) from exc
                    logger.info(
                        "Concurrent delivery for Shiprocket order %s, returning %s",
                        payload.order_id,
                        winner.order_number,
                    )
                    return winner
                if exc.field == "order_number" and attempt < _ORDER_NUMBER_ATTEMPTS:
                    logger.warning("Order number %s collided, regenerating", order.order_number)
                    order = order.copy(order_number=generate_order_number())
                    continue
                raise InternalServerError(f"Could not store order {payload.order_id}") from exc

        logger.info(
            "Order %s created for Shiprocket order %s: %d item(s), total %.2f",
            order.order_number,
            order.external_order_id,
            len(order.items),
            order.pricing.total,
        )
        self._notify("order_confirmation", order)
        return order

    def _build_items(self, payload: ShiprocketWebhookPayload) -> list[OrderItem]:
        items = []
        for line in payload.cart_data.items:
            variant = self._store.catalog.get_variant_by_shiprocket_id(line.variant_id)
            if variant is None:
                raise NotFoundError(f"Variant with Shiprocket id {line.variant_id} not found")
            product = self._store.catalog.get_product(variant.product_id)
            if product is None:
                raise NotFoundError(f"Product {variant.product_id} not found")
            items.append(OrderItem(
                variant_id=variant.id,
                product_id=product.id,
                product_name=product.name,
                sku=variant.sku,
                quantity=line.quantity,
                price=variant.price,
                subtotal=round(variant.price * line.quantity, 2),
                shiprocket_variant_id=line.variant_id,
                attributes=ItemAttributes(
                    size=variant.attributes.size,
                    color_name=variant.attributes.color_name,
                    color_hex=variant.attributes.color_hex,
                ),
                image=variant.image or product.image,
            ))
        return items

    def _build_order(self, payload: ShiprocketWebhookPayload) -> Order:
        items = self._build_items(payload)
        if not items:
            raise BadRequestError(f"Shiprocket order {payload.order_id} has an empty cart")

        contact = Address(phone=payload.phone or "", email=payload.email or "")
        shipping = normalize_address(payload.shipping_address, contact)
        billing = normalize_address(payload.billing_address, shipping)

        pricing = compute_pricing(
            items,
            subtotal=payload.subtotal_price,
            discount=payload.coupon_discount,
            prepaid_discount=payload.prepaid_discount,
            shipping_charges=payload.shipping_charges,
            tax=payload.tax,
            provider_total=payload.total_amount_payable,
            tolerance=self._price_tolerance,
            reference=f"Shiprocket order {payload.order_id}",
        )
        coupon = None
        if payload.coupon_codes:
            coupon = AppliedCoupon(code=payload.coupon_codes[0], discount=pricing.discount)

        return Order(
            external_order_id=payload.order_id,
            order_number=generate_order_number(),
            items=items,
            shipping_address=shipping,
            billing_address=billing,
            payment_type=payload.payment_type or "",
            payment_status=resolve_payment_status(payload.payment_type, payload.payment_status),
            order_status=OrderStatus.CONFIRMED,
            pricing=pricing,
            applied_coupon=coupon,
            shipping_plan=payload.shipping_plan,
            rto_prediction=payload.rto_prediction,
            estimated_delivery_date=parse_edd(payload.edd),
            shiprocket_cart_id=payload.cart_id,
            shiprocket_fastrr_order_id=payload.fastrr_order_id,
        )

    # ── Mutations ─────────────────────────────────────────────────────────

    def _require(self, order_id: str, *, for_update: bool = False) -> Order:
        getter = self._store.orders.get_for_update if for_update else self._store.orders.get
        order = getter(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def cancel_order(self, order_id: str, reason: str, cancelled_by: str | None = None) -> Order:
        """Cancel an order and put its stock back.

        Cancelling an already-cancelled order returns it unchanged.
        """
        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            if order.order_status == OrderStatus.CANCELLED:
                logger.info("Order %s already cancelled", order.order_number)
                return order
            if not can_transition(order.order_status, OrderStatus.CANCELLED):
                raise BadRequestError(
                    f"Order {order.order_number} cannot be cancelled from {order.order_status.value}"
                )
            order.order_status = OrderStatus.CANCELLED
            order.payment_status = PaymentStatus.REFUNDED
            order.cancellation_reason = reason
            order.cancelled_by = cancelled_by
            order.cancelled_at = utcnow()
            self._store.orders.update(order)

        restored = self._ledger.restore(_movements(order))
        logger.info(
            "Order %s cancelled (%s); restored %d/%d line(s)",
            order.order_number,
            reason,
            restored,
            len(order.items),
        )
        self._notify("order_cancelled", order)
        return order

    def update_order_status(self, order_id: str, status: OrderStatus) -> Order:
        """Move an order through the state machine.

        CANCELLED is routed through cancel_order() so stock is restored.

        Raises:
            NotFoundError: unknown order.
            BadRequestError: transition not allowed from the current status.
        """
        status = OrderStatus(status)
        if status == OrderStatus.CANCELLED:
            return self.cancel_order(order_id, reason=f"Status set to {status.value}")

        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            if order.order_status == status:
                return order
            if not can_transition(order.order_status, status):
                raise BadRequestError(
                    f"Invalid status transition {order.order_status.value} -> {status.value} "
                    f"for order {order.order_number}"
                )
            previous = order.order_status
            order.order_status = status
            if status == OrderStatus.DELIVERED:
                order.delivered_at = utcnow()
            self._store.orders.update(order)

        logger.info("Order %s status %s -> %s", order.order_number, previous.value, status.value)
        return order

    def update_payment_status(self, order_id: str, status: PaymentStatus) -> Order:
        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            order.payment_status = PaymentStatus(status)
            self._store.orders.update(order)
        logger.info("Order %s payment status -> %s", order.order_number, order.payment_status.value)
        return order

    def update_tracking_info(self, order_id: str, tracking_number: str | None, shipment_id: str | None = None) -> Order:
        """Set the tracking number; the shipment id only changes when given."""
        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            if tracking_number:
                order.tracking_number = tracking_number
            if shipment_id:
                order.shiprocket_shipment_id = shipment_id
            self._store.orders.update(order)
        return order

    def add_notes(self, order_id: str, notes: str) -> Order:
        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            order.notes = notes
            self._store.orders.update(order)
        return order

    def link_order_to_user(self, order_id: str, user_id: str) -> Order:
        with self._store.transaction():
            order = self._require(order_id, for_update=True)
            order.user_id = user_id
            self._store.orders.update(order)
        return order

    def link_guest_orders_by_email(self, email: str, user_id: str) -> int:
        """Attach guest orders placed with ``email`` to a newly signed-in user."""
        if not email:
            raise BadRequestError("email is required")
        count = self._store.orders.link_guest_orders_by_email(email, user_id)
        logger.info("Linked %d guest order(s) to user %s", count, user_id)
        return count

    # ── Queries ───────────────────────────────────────────────────────────

    def get_order(self, order_id: str) -> Order:
        return self._require(order_id)

    def get_order_by_external_id(self, external_order_id: str) -> Order | None:
        return self._store.orders.get_by_external_id(external_order_id)

    def get_order_by_number(self, order_number: str) -> Order:
        order = self._store.orders.get_by_number(order_number)
        if order is None:
            raise NotFoundError(f"Order {order_number} not found")
        return order

    def list_orders(self, filters: OrderFilters | None = None, page: int = 1, limit: int = 20) -> dict[str, Any]:
        page, limit = max(page, 1), min(max(limit, 1), 100)
        orders, total = self._store.orders.list(filters or OrderFilters(), (page - 1) * limit, limit)
        return {
            "orders": orders,
            "total": total,
            "page": page,
            "limit": limit,
            "pages": (total + limit - 1) // limit,
        }

    def get_order_stats(self) -> OrderStats:
        return self._store.orders.stats()

    def get_recent_orders(self, limit: int = 10) -> list[Order]:
        orders, _ = self._store.orders.list(OrderFilters(), 0, limit)
        return orders

    def search_orders(self, term: str, limit: int = 20) -> list[Order]:
        term = (term or "").strip()
        if not term:
            raise BadRequestError("Search term is required")
        return self._store.orders.search(term, limit)

    # ── Notifications ─────────────────────────────────────────────────────

    def _notify(self, template: str, order: Order) -> None:
        if self._mailer is None:
            return
        context = {
            "order_number": order.order_number,
            "customer_name": order.shipping_address.name or "there",
            "item_count": sum(i.quantity for i in order.items),
            "total": order.pricing.total,
            "delivery_line": (
                f"Estimated delivery: {order.estimated_delivery_date:%d %b %Y}"
                if order.estimated_delivery_date else ""
            ),
            "reason": order.cancellation_reason or "",
        }
        try:
            self._mailer.dispatch(template, order.customer_email, context)
        except Exception:
            logger.exception("Could not queue %s mail for order %s", template, order.order_number)
