"""In-memory storage backend.

Used for development and tests.  Records are held as plain dicts (the
same documents the PostgreSQL backend keeps in JSONB), so callers never
share mutable state with the store.

Concurrency contract:
- One re-entrant lock serializes every read and write
- ``transaction()`` holds the lock for the whole block, snapshots all
  tables on entry and restores the snapshot if the block raises
"""

from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from orderhub.catalog.models import Category, Product, ProductVariant
from orderhub.errors import DuplicateKeyError, NotFoundError
from orderhub.orders.models import Order, OrderFilters, OrderStats, OrderStatus
from orderhub.payments.models import Payment
from orderhub.serialization import utcnow
from orderhub.shipping.models import Shipment
from orderhub.storage.base import (
    CatalogRepository,
    OrderRepository,
    PaymentRepository,
    ShipmentRepository,
    Store,
    WishlistRepository,
)
from orderhub.wishlist.models import Wishlist

logger = logging.getLogger(__name__)

_TABLES = ("orders", "products", "variants", "categories", "payments", "shipments", "wishlists")


class MemoryStore(Store):
    """Dict-backed store with snapshot/restore transactions."""

    def __init__(self):
        self._lock = threading.RLock()
        self._tables: dict[str, dict[str, dict[str, Any]]] = {name: {} for name in _TABLES}
        self.orders = MemoryOrderRepository(self)
        self.catalog = MemoryCatalogRepository(self)
        self.payments = MemoryPaymentRepository(self)
        self.shipments = MemoryShipmentRepository(self)
        self.wishlists = MemoryWishlistRepository(self)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield
            except BaseException:
                self._tables.clear()
                self._tables.update(snapshot)
                logger.debug("Memory transaction rolled back")
                raise

    @contextmanager
    def locked(self) -> Iterator[dict[str, dict[str, dict[str, Any]]]]:
        with self._lock:
            yield self._tables

    def table(self, name: str) -> dict[str, dict[str, Any]]:
        return self._tables[name]


class _MemoryRepository:
    def __init__(self, store: MemoryStore):
        self._store = store


# ── Orders ────────────────────────────────────────────────────────────────


class MemoryOrderRepository(_MemoryRepository, OrderRepository):

    def _all(self) -> list[Order]:
        return [Order.from_dict(d) for d in self._store.table("orders").values()]

    def create(self, order: Order) -> Order:
        with self._store.locked():
            rows = self._store.table("orders")
            for row in rows.values():
                if row["external_order_id"] == order.external_order_id:
                    raise DuplicateKeyError("external_order_id")
                if row["order_number"] == order.order_number:
                    raise DuplicateKeyError("order_number")
            rows[order.id] = order.to_dict()
        return order

    def get(self, order_id: str) -> Order | None:
        with self._store.locked():
            row = self._store.table("orders").get(order_id)
            return Order.from_dict(row) if row else None

    def _find(self, key: str, value: str) -> Order | None:
        with self._store.locked():
            for row in self._store.table("orders").values():
                if row.get(key) == value:
                    return Order.from_dict(row)
        return None

    def get_by_external_id(self, external_order_id: str) -> Order | None:
        return self._find("external_order_id", external_order_id)

    def get_by_number(self, order_number: str) -> Order | None:
        return self._find("order_number", order_number)

    def update(self, order: Order) -> Order:
        with self._store.locked():
            rows = self._store.table("orders")
            if order.id not in rows:
                raise NotFoundError(f"Order {order.id} not found")
            order.updated_at = utcnow()
            rows[order.id] = order.to_dict()
        return order

    def list(self, filters: OrderFilters, offset: int = 0, limit: int = 20) -> tuple[list[Order], int]:
        with self._store.locked():
            matched = [o for o in self._all() if filters.matches(o)]
        matched.sort(key=lambda o: o.created_at, reverse=True)
        return matched[offset:offset + limit], len(matched)

    def search(self, term: str, limit: int = 20) -> list[Order]:
        needle = term.lower()
        with self._store.locked():
            orders = self._all()
        hits = []
        for o in orders:
            haystack = (
                o.order_number,
                o.external_order_id,
                o.shipping_address.email,
                o.shipping_address.phone,
                o.shipping_address.name,
            )
            if any(needle in (field or "").lower() for field in haystack):
                hits.append(o)
        hits.sort(key=lambda o: o.created_at, reverse=True)
        return hits[:limit]

    def stats(self) -> OrderStats:
        with self._store.locked():
            orders = self._all()
        stats = OrderStats(total_orders=len(orders))
        for o in orders:
            if o.order_status == OrderStatus.CANCELLED:
                stats.cancelled_orders += 1
                continue
            stats.total_revenue += o.pricing.total
            if o.order_status in (OrderStatus.CONFIRMED, OrderStatus.PROCESSING):
                stats.pending_orders += 1
            elif o.order_status == OrderStatus.DELIVERED:
                stats.delivered_orders += 1
        stats.total_revenue = round(stats.total_revenue, 2)
        return stats

    def link_guest_orders_by_email(self, email: str, user_id: str) -> int:
        changed = 0
        with self._store.locked():
            rows = self._store.table("orders")
            for order_id, row in rows.items():
                order = Order.from_dict(row)
                if order.user_id is None and order.shipping_address.email.lower() == email.lower():
                    order.user_id = user_id
                    order.updated_at = utcnow()
                    rows[order_id] = order.to_dict()
                    changed += 1
        return changed


# ── Catalog ───────────────────────────────────────────────────────────────


class MemoryCatalogRepository(_MemoryRepository, CatalogRepository):

    def get_product(self, product_id: str) -> Product | None:
        with self._store.locked():
            row = self._store.table("products").get(product_id)
            return Product.from_dict(row) if row else None

    def list_products(
        self, *, active_only: bool = True, category_id: str | None = None,
        offset: int = 0, limit: int = 100,
    ) -> tuple[list[Product], int]:
        with self._store.locked():
            products = [Product.from_dict(d) for d in self._store.table("products").values()]
        if active_only:
            products = [p for p in products if p.is_active]
        if category_id is not None:
            products = [p for p in products if p.category_id == category_id]
        products.sort(key=lambda p: p.created_at)
        return products[offset:offset + limit], len(products)

    def save_product(self, product: Product) -> Product:
        with self._store.locked():
            self._store.table("products")[product.id] = product.to_dict()
        return product

    def get_variant(self, variant_id: str) -> ProductVariant | None:
        with self._store.locked():
            row = self._store.table("variants").get(variant_id)
            return ProductVariant.from_dict(row) if row else None

    def _find_variant(self, key: str, value: str) -> ProductVariant | None:
        with self._store.locked():
            for row in self._store.table("variants").values():
                if row.get(key) == value:
                    return ProductVariant.from_dict(row)
        return None

    def get_variant_by_shiprocket_id(self, shiprocket_variant_id: str) -> ProductVariant | None:
        return self._find_variant("shiprocket_variant_id", shiprocket_variant_id)

    def get_variant_by_sku(self, sku: str) -> ProductVariant | None:
        return self._find_variant("sku", sku)

    def list_variants(self, product_id: str) -> list[ProductVariant]:
        with self._store.locked():
            return [
                ProductVariant.from_dict(d)
                for d in self._store.table("variants").values()
                if d["product_id"] == product_id
            ]

    def save_variant(self, variant: ProductVariant) -> ProductVariant:
        if variant.stock < 0:
            raise ValueError("stock must be non-negative")
        with self._store.locked():
            rows = self._store.table("variants")
            for other_id, row in rows.items():
                if other_id == variant.id:
                    continue
                if row["sku"] == variant.sku:
                    raise DuplicateKeyError("sku")
                if variant.shiprocket_variant_id and row.get("shiprocket_variant_id") == variant.shiprocket_variant_id:
                    raise DuplicateKeyError("shiprocket_variant_id")
            rows[variant.id] = variant.to_dict()
        return variant

    def set_shiprocket_variant_id(self, variant_id: str, shiprocket_variant_id: str) -> bool:
        with self._store.locked():
            row = self._store.table("variants").get(variant_id)
            if row is None or row.get("shiprocket_variant_id"):
                return False
            row["shiprocket_variant_id"] = shiprocket_variant_id
            row["updated_at"] = utcnow().isoformat()
        return True

    def get_category(self, category_id: str) -> Category | None:
        with self._store.locked():
            row = self._store.table("categories").get(category_id)
            return Category.from_dict(row) if row else None

    def list_categories(self, *, offset: int = 0, limit: int = 100) -> tuple[list[Category], int]:
        with self._store.locked():
            cats = [Category.from_dict(d) for d in self._store.table("categories").values()]
        cats = [c for c in cats if c.is_active]
        cats.sort(key=lambda c: c.created_at)
        return cats[offset:offset + limit], len(cats)

    def save_category(self, category: Category) -> Category:
        with self._store.locked():
            self._store.table("categories")[category.id] = category.to_dict()
        return category

    def try_decrement_stock(self, variant_id: str, quantity: int) -> bool:
        with self._store.locked():
            row = self._store.table("variants").get(variant_id)
            if row is None or row["stock"] < quantity:
                return False
            row["stock"] -= quantity
            return True

    def increment_stock(self, variant_id: str, quantity: int) -> None:
        with self._store.locked():
            row = self._store.table("variants").get(variant_id)
            if row is None:
                raise NotFoundError(f"Variant {variant_id} not found")
            row["stock"] += quantity


# ── Payments / shipments / wishlists ──────────────────────────────────────


class MemoryPaymentRepository(_MemoryRepository, PaymentRepository):

    def create(self, payment: Payment) -> Payment:
        with self._store.locked():
            self._store.table("payments")[payment.id] = payment.to_dict()
        return payment

    def get(self, payment_id: str) -> Payment | None:
        with self._store.locked():
            row = self._store.table("payments").get(payment_id)
            return Payment.from_dict(row) if row else None

    def _find(self, key: str, value: str) -> Payment | None:
        with self._store.locked():
            for row in self._store.table("payments").values():
                if row.get(key) == value:
                    return Payment.from_dict(row)
        return None

    def get_by_order(self, order_id: str) -> Payment | None:
        return self._find("order_id", order_id)

    def update(self, payment: Payment) -> Payment:
        with self._store.locked():
            rows = self._store.table("payments")
            if payment.id not in rows:
                raise NotFoundError(f"Payment {payment.id} not found")
            payment.updated_at = utcnow()
            rows[payment.id] = payment.to_dict()
        return payment


class MemoryShipmentRepository(_MemoryRepository, ShipmentRepository):

    def create(self, shipment: Shipment) -> Shipment:
        with self._store.locked():
            rows = self._store.table("shipments")
            if any(row["order_id"] == shipment.order_id for row in rows.values()):
                raise DuplicateKeyError("order_id")
            rows[shipment.id] = shipment.to_dict()
        return shipment

    def get(self, shipment_id: str) -> Shipment | None:
        with self._store.locked():
            row = self._store.table("shipments").get(shipment_id)
            return Shipment.from_dict(row) if row else None

    def _find(self, key: str, value: str) -> Shipment | None:
        with self._store.locked():
            for row in self._store.table("shipments").values():
                if row.get(key) == value:
                    return Shipment.from_dict(row)
        return None

    def get_by_order(self, order_id: str) -> Shipment | None:
        return self._find("order_id", order_id)

    def get_by_awb(self, awb_code: str) -> Shipment | None:
        return self._find("awb_code", awb_code)

    def update(self, shipment: Shipment) -> Shipment:
        with self._store.locked():
            rows = self._store.table("shipments")
            if shipment.id not in rows:
                raise NotFoundError(f"Shipment {shipment.id} not found")
            shipment.updated_at = utcnow()
            rows[shipment.id] = shipment.to_dict()
        return shipment


class MemoryWishlistRepository(_MemoryRepository, WishlistRepository):

    def _find(self, key: str, value: str) -> Wishlist | None:
        with self._store.locked():
            for row in self._store.table("wishlists").values():
                if row.get(key) == value:
                    return Wishlist.from_dict(row)
        return None

    def get_by_user(self, user_id: str) -> Wishlist | None:
        return self._find("user_id", user_id)

    def get_by_session(self, session_id: str) -> Wishlist | None:
        return self._find("session_id", session_id)

    def save(self, wishlist: Wishlist) -> Wishlist:
        with self._store.locked():
            wishlist.updated_at = utcnow()
            self._store.table("wishlists")[wishlist.id] = wishlist.to_dict()
        return wishlist

    def delete(self, wishlist_id: str) -> bool:
        with self._store.locked():
            return self._store.table("wishlists").pop(wishlist_id, None) is not None
