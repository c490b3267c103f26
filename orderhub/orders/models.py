"""Order data models and the order-status state machine.

An Order is created once, on the first successful checkout webhook for
its external (Shiprocket) order id, and is never deleted: later events
only move it through the state machine below.  Order items are frozen
at creation time.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from orderhub.serialization import parse_datetime, to_jsonable, utcnow


class OrderStatus(str, Enum):
    """Order lifecycle states."""
    CREATED = "CREATED"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    RETURNED = "RETURNED"    # RTO
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


TERMINAL_STATUSES = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
})

# Forward skips are legal: carriers do not report every intermediate scan.
_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.CREATED: frozenset({
        OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED,
        OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED,
        OrderStatus.RETURNED, OrderStatus.CANCELLED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.DELIVERED, OrderStatus.RETURNED, OrderStatus.CANCELLED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED,
        OrderStatus.RETURNED, OrderStatus.CANCELLED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED,
        OrderStatus.RETURNED, OrderStatus.CANCELLED,
    }),
    OrderStatus.OUT_FOR_DELIVERY: frozenset({
        OrderStatus.DELIVERED, OrderStatus.RETURNED, OrderStatus.CANCELLED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """True if an order in ``current`` may move to ``target``."""
    return target in _TRANSITIONS[current]


@dataclass(frozen=True)
class ItemAttributes:
    size: str = ""
    color_name: str = ""
    color_hex: str = ""


@dataclass(frozen=True)
class OrderItem:
    """A line item snapshotted at order creation."""
    variant_id: str
    product_id: str
    product_name: str
    sku: str
    quantity: int
    price: float      # unit price at time of order
    subtotal: float   # price * quantity
    shiprocket_variant_id: str = ""
    attributes: ItemAttributes = field(default_factory=ItemAttributes)
    image: str = ""

    @staticmethod
    def from_dict(d: dict[str, Any]) -> OrderItem:
        data = {k: v for k, v in d.items() if k in OrderItem.__dataclass_fields__}
        data["attributes"] = ItemAttributes(**(d.get("attributes") or {}))
        return OrderItem(**data)


@dataclass(frozen=True)
class Address:
    name: str = ""
    phone: str = ""
    email: str = ""
    line1: str = ""
    line2: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""
    country: str = "India"


@dataclass
class Pricing:
    subtotal: float = 0.0
    discount: float = 0.0
    prepaid_discount: float = 0.0
    shipping_charges: float = 0.0
    tax: float = 0.0
    total: float = 0.0


@dataclass
class AppliedCoupon:
    code: str
    discount: float = 0.0


@dataclass
class Order:
    """One confirmed purchase."""

    external_order_id: str
    order_number: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    items: list[OrderItem] = field(default_factory=list)
    shipping_address: Address = field(default_factory=Address)
    billing_address: Address = field(default_factory=Address)
    payment_type: str = ""
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_status: OrderStatus = OrderStatus.CREATED
    pricing: Pricing = field(default_factory=Pricing)
    applied_coupon: AppliedCoupon | None = None

    # Shiprocket checkout metadata
    shipping_plan: str | None = None
    rto_prediction: str | None = None
    estimated_delivery_date: datetime | None = None
    shiprocket_cart_id: str | None = None
    shiprocket_fastrr_order_id: str | None = None
    tracking_number: str | None = None
    shiprocket_shipment_id: str | None = None

    # Ownership
    user_id: str | None = None
    session_id: str | None = None
    notes: str = ""

    cancellation_reason: str | None = None
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_STATUSES

    @property
    def customer_email(self) -> str:
        return self.shipping_address.email or self.billing_address.email

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Order:
        data = {k: v for k, v in d.items() if k in Order.__dataclass_fields__}
        data["items"] = [OrderItem.from_dict(i) for i in d.get("items") or []]
        data["shipping_address"] = Address(**(d.get("shipping_address") or {}))
        data["billing_address"] = Address(**(d.get("billing_address") or {}))
        data["pricing"] = Pricing(**(d.get("pricing") or {}))
        coupon = d.get("applied_coupon")
        data["applied_coupon"] = AppliedCoupon(**coupon) if coupon else None
        data["payment_status"] = PaymentStatus(d.get("payment_status", PaymentStatus.PENDING))
        data["order_status"] = OrderStatus(d.get("order_status", OrderStatus.CREATED))
        for key in ("estimated_delivery_date", "cancelled_at", "delivered_at"):
            data[key] = parse_datetime(d.get(key))
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return Order(**data)

    def copy(self, **changes: Any) -> Order:
        return replace(self, **changes)


@dataclass
class OrderFilters:
    """Filters for ``list_orders``.  Unset fields do not constrain."""
    user_id: str | None = None
    session_id: str | None = None
    order_status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    payment_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None

    def matches(self, order: Order) -> bool:
        if self.user_id and order.user_id != self.user_id:
            return False
        if self.session_id and order.session_id != self.session_id:
            return False
        if self.order_status and order.order_status != self.order_status:
            return False
        if self.payment_status and order.payment_status != self.payment_status:
            return False
        if self.payment_type and order.payment_type != self.payment_type:
            return False
        if self.start_date and order.created_at < self.start_date:
            return False
        if self.end_date and order.created_at > self.end_date:
            return False
        return True


@dataclass
class OrderStats:
    total_orders: int = 0
    total_revenue: float = 0.0  # excludes cancelled orders
    pending_orders: int = 0     # CONFIRMED or PROCESSING
    delivered_orders: int = 0
    cancelled_orders: int = 0

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)
