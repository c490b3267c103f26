"""PostgreSQL storage backend (psycopg 3, raw SQL).

Each aggregate is stored as a JSONB document plus the columns we index,
filter or constrain on.  Variant stock lives in its own integer column
so the guarded decrement can run as a single conditional UPDATE.

Concurrency contract:
- ``orders.external_order_id`` is UNIQUE; that constraint, not the
  read-before-insert, is the authoritative duplicate signal
- ``product_variants.stock`` carries ``CHECK (stock >= 0)``
- ``UPDATE ... SET stock = stock - n WHERE id = ? AND stock >= n`` takes a
  row lock and re-evaluates the guard after acquiring it, so of two
  transactions racing for the last unit exactly one updates a row
- ``transaction()`` binds one connection to the current context;
  repository calls made inside the block reuse it
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from orderhub.catalog.models import Category, Product, ProductVariant
from orderhub.errors import DuplicateKeyError, NotFoundError
from orderhub.orders.models import Order, OrderFilters, OrderStats
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

# Unique constraint name -> field reported in DuplicateKeyError
_CONSTRAINT_FIELDS = {
    "orders_external_order_id_key": "external_order_id",
    "orders_order_number_key": "order_number",
    "product_variants_sku_key": "sku",
    "product_variants_shiprocket_variant_id_key": "shiprocket_variant_id",
    "shipments_order_id_key": "order_id",
}

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS orders (
        id                TEXT PRIMARY KEY,
        external_order_id TEXT NOT NULL,
        order_number      TEXT NOT NULL,
        user_id           TEXT,
        session_id        TEXT,
        order_status      TEXT NOT NULL,
        payment_status    TEXT NOT NULL,
        payment_type      TEXT,
        email             TEXT,
        phone             TEXT,
        customer_name     TEXT,
        total             NUMERIC(12, 2) NOT NULL DEFAULT 0,
        data              JSONB NOT NULL,
        created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
        CONSTRAINT orders_external_order_id_key UNIQUE (external_order_id),
        CONSTRAINT orders_order_number_key UNIQUE (order_number)
    )
    """,
    "CREATE INDEX IF NOT EXISTS orders_user_id_idx ON orders (user_id)",
    "CREATE INDEX IF NOT EXISTS orders_created_at_idx ON orders (created_at DESC)",
    """
    CREATE TABLE IF NOT EXISTS categories (
        id                       TEXT PRIMARY KEY,
        shiprocket_collection_id TEXT,
        is_active                BOOLEAN NOT NULL DEFAULT TRUE,
        data                     JSONB NOT NULL,
        created_at               TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS products (
        id          TEXT PRIMARY KEY,
        category_id TEXT,
        is_active   BOOLEAN NOT NULL DEFAULT TRUE,
        data        JSONB NOT NULL,
        created_at  TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS product_variants (
        id                    TEXT PRIMARY KEY,
        product_id            TEXT NOT NULL,
        sku                   TEXT NOT NULL,
        shiprocket_variant_id TEXT,
        stock                 INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
        is_active             BOOLEAN NOT NULL DEFAULT TRUE,
        data                  JSONB NOT NULL,
        CONSTRAINT product_variants_sku_key UNIQUE (sku),
        CONSTRAINT product_variants_shiprocket_variant_id_key UNIQUE (shiprocket_variant_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS product_variants_product_id_idx ON product_variants (product_id)",
    """
    CREATE TABLE IF NOT EXISTS payments (
        id             TEXT PRIMARY KEY,
        order_id       TEXT NOT NULL,
        transaction_id TEXT,
        status         TEXT NOT NULL,
        data           JSONB NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS payments_order_id_idx ON payments (order_id)",
    """
    CREATE TABLE IF NOT EXISTS shipments (
        id       TEXT PRIMARY KEY,
        order_id TEXT NOT NULL,
        awb_code TEXT,
        status   TEXT NOT NULL,
        data     JSONB NOT NULL,
        CONSTRAINT shipments_order_id_key UNIQUE (order_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS wishlists (
        id         TEXT PRIMARY KEY,
        user_id    TEXT UNIQUE,
        session_id TEXT UNIQUE,
        data       JSONB NOT NULL
    )
    """,
)


def _duplicate_field(exc: psycopg.errors.UniqueViolation) -> str:
    constraint = exc.diag.constraint_name or ""
    return _CONSTRAINT_FIELDS.get(constraint, constraint or "unknown")


class PostgresStore(Store):

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._tx_conn: ContextVar[psycopg.Connection | None] = ContextVar(
            f"orderhub_tx_conn_{id(self)}", default=None
        )
        self.orders = PostgresOrderRepository(self)
        self.catalog = PostgresCatalogRepository(self)
        self.payments = PostgresPaymentRepository(self)
        self.shipments = PostgresShipmentRepository(self)
        self.wishlists = PostgresWishlistRepository(self)

    def _connect(self) -> psycopg.Connection:
        return psycopg.connect(self._dsn, autocommit=True, row_factory=dict_row)

    @contextmanager
    def connection(self) -> Iterator[psycopg.Connection]:
        """The transaction's connection if one is open, else a fresh one."""
        conn = self._tx_conn.get()
        if conn is not None:
            yield conn
            return
        with self._connect() as conn:
            yield conn

    @contextmanager
    def transaction(self) -> Iterator[None]:
        outer = self._tx_conn.get()
        if outer is not None:
            with outer.transaction():  # savepoint
                yield
            return
        with self._connect() as conn:
            with conn.transaction():
                token = self._tx_conn.set(conn)
                try:
                    yield
                finally:
                    self._tx_conn.reset(token)

    def init_schema(self) -> None:
        with self.connection() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)
        logger.info("orderhub tables initialized")


class _PostgresRepository:
    def __init__(self, store: PostgresStore):
        self._store = store

    def _fetchone(self, sql: str, params: tuple) -> dict[str, Any] | None:
        with self._store.connection() as conn:
            return conn.execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        with self._store.connection() as conn:
            return conn.execute(sql, params).fetchall()

    def _execute(self, sql: str, params: tuple) -> int:
        with self._store.connection() as conn:
            return conn.execute(sql, params).rowcount


# ── Orders ────────────────────────────────────────────────────────────────


def _order_columns(order: Order) -> tuple:
    return (
        order.user_id,
        order.session_id,
        order.order_status.value,
        order.payment_status.value,
        order.payment_type,
        order.shipping_address.email,
        order.shipping_address.phone,
        order.shipping_address.name,
        order.pricing.total,
        Jsonb(order.to_dict()),
    )


class PostgresOrderRepository(_PostgresRepository, OrderRepository):

    def create(self, order: Order) -> Order:
        try:
            self._execute(
                """INSERT INTO orders
                   (id, external_order_id, order_number, user_id, session_id,
                    order_status, payment_status, payment_type, email, phone,
                    customer_name, total, data, created_at, updated_at)
                   VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)""",
                (order.id, order.external_order_id, order.order_number)
                + _order_columns(order)
                + (order.created_at, order.updated_at),
            )
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateKeyError(_duplicate_field(exc)) from exc
        return order

    def _get_where(self, column: str, value: str) -> Order | None:
        row = self._fetchone(f"SELECT data FROM orders WHERE {column} = %s", (value,))
        return Order.from_dict(row["data"]) if row else None

    def get(self, order_id: str) -> Order | None:
        return self._get_where("id", order_id)

    def get_for_update(self, order_id: str) -> Order | None:
        row = self._fetchone("SELECT data FROM orders WHERE id = %s FOR UPDATE", (order_id,))
        return Order.from_dict(row["data"]) if row else None

    def get_by_external_id(self, external_order_id: str) -> Order | None:
        return self._get_where("external_order_id", external_order_id)

    def get_by_number(self, order_number: str) -> Order | None:
        return self._get_where("order_number", order_number)

    def update(self, order: Order) -> Order:
        order.updated_at = utcnow()
        count = self._execute(
            """UPDATE orders
               SET user_id = %s, session_id = %s, order_status = %s,
                   payment_status = %s, payment_type = %s, email = %s, phone = %s,
                   customer_name = %s, total = %s, data = %s, updated_at = %s
               WHERE id = %s""",
            _order_columns(order) + (order.updated_at, order.id),
        )
        if count == 0:
            raise NotFoundError(f"Order {order.id} not found")
        return order

    def list(self, filters: OrderFilters, offset: int = 0, limit: int = 20) -> tuple[list[Order], int]:
        clauses: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("user_id", filters.user_id),
            ("session_id", filters.session_id),
            ("order_status", filters.order_status.value if filters.order_status else None),
            ("payment_status", filters.payment_status.value if filters.payment_status else None),
            ("payment_type", filters.payment_type),
        ):
            if value:
                clauses.append(f"{column} = %s")
                params.append(value)
        if filters.start_date:
            clauses.append("created_at >= %s")
            params.append(filters.start_date)
        if filters.end_date:
            clauses.append("created_at <= %s")
            params.append(filters.end_date)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        with self._store.connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) AS n FROM orders {where}", tuple(params)).fetchone()["n"]
            rows = conn.execute(
                f"SELECT data FROM orders {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params) + (limit, offset),
            ).fetchall()
        return [Order.from_dict(r["data"]) for r in rows], total

    def search(self, term: str, limit: int = 20) -> list[Order]:
        pattern = f"%{term}%"
        rows = self._fetchall(
            """SELECT data FROM orders
               WHERE order_number ILIKE %s OR external_order_id ILIKE %s
                  OR email ILIKE %s OR phone ILIKE %s OR customer_name ILIKE %s
               ORDER BY created_at DESC LIMIT %s""",
            (pattern, pattern, pattern, pattern, pattern, limit),
        )
        return [Order.from_dict(r["data"]) for r in rows]

    def stats(self) -> OrderStats:
        row = self._fetchone(
            """SELECT COUNT(*) AS total_orders,
                      COALESCE(SUM(total) FILTER (WHERE order_status <> 'CANCELLED'), 0) AS total_revenue,
                      COUNT(*) FILTER (WHERE order_status IN ('CONFIRMED', 'PROCESSING')) AS pending_orders,
                      COUNT(*) FILTER (WHERE order_status = 'DELIVERED') AS delivered_orders,
                      COUNT(*) FILTER (WHERE order_status = 'CANCELLED') AS cancelled_orders
               FROM orders""",
            (),
        )
        return OrderStats(
            total_orders=row["total_orders"],
            total_revenue=round(float(row["total_revenue"]), 2),
            pending_orders=row["pending_orders"],
            delivered_orders=row["delivered_orders"],
            cancelled_orders=row["cancelled_orders"],
        )

    def link_guest_orders_by_email(self, email: str, user_id: str) -> int:
        return self._execute(
            """UPDATE orders
               SET user_id = %s,
                   data = jsonb_set(data, '{user_id}', to_jsonb(%s::text)),
                   updated_at = now()
               WHERE user_id IS NULL AND lower(email) = lower(%s)""",
            (user_id, user_id, email),
        )


# ── Catalog ───────────────────────────────────────────────────────────────


def _variant_from_row(row: dict[str, Any]) -> ProductVariant:
    data = dict(row["data"])
    data["stock"] = row["stock"]
    data["shiprocket_variant_id"] = row["shiprocket_variant_id"]
    return ProductVariant.from_dict(data)


class PostgresCatalogRepository(_PostgresRepository, CatalogRepository):

    def get_product(self, product_id: str) -> Product | None:
        row = self._fetchone("SELECT data FROM products WHERE id = %s", (product_id,))
        return Product.from_dict(row["data"]) if row else None

    def list_products(
        self, *, active_only: bool = True, category_id: str | None = None,
        offset: int = 0, limit: int = 100,
    ) -> tuple[list[Product], int]:
        clauses = []
        params: list[Any] = []
        if active_only:
            clauses.append("is_active")
        if category_id is not None:
            clauses.append("category_id = %s")
            params.append(category_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._store.connection() as conn:
            total = conn.execute(f"SELECT COUNT(*) AS n FROM products {where}", tuple(params)).fetchone()["n"]
            rows = conn.execute(
                f"SELECT data FROM products {where} ORDER BY created_at LIMIT %s OFFSET %s",
                tuple(params) + (limit, offset),
            ).fetchall()
        return [Product.from_dict(r["data"]) for r in rows], total

    def save_product(self, product: Product) -> Product:
        self._execute(
            """INSERT INTO products (id, category_id, is_active, data, created_at)
               VALUES (%s, %s, %s, %s, %s)
               ON CONFLICT (id) DO UPDATE
               SET category_id = EXCLUDED.category_id,
                   is_active = EXCLUDED.is_active,
                   data = EXCLUDED.data""",
            (product.id, product.category_id, product.is_active, Jsonb(product.to_dict()), product.created_at),
        )
        return product

    def get_variant(self, variant_id: str) -> ProductVariant | None:
        row = self._fetchone(
            "SELECT data, stock, shiprocket_variant_id FROM product_variants WHERE id = %s",
            (variant_id,),
        )
        return _variant_from_row(row) if row else None

    def get_variant_by_shiprocket_id(self, shiprocket_variant_id: str) -> ProductVariant | None:
        row = self._fetchone(
            "SELECT data, stock, shiprocket_variant_id FROM product_variants WHERE shiprocket_variant_id = %s",
            (shiprocket_variant_id,),
        )
        return _variant_from_row(row) if row else None

    def get_variant_by_sku(self, sku: str) -> ProductVariant | None:
        row = self._fetchone(
            "SELECT data, stock, shiprocket_variant_id FROM product_variants WHERE sku = %s",
            (sku,),
        )
        return _variant_from_row(row) if row else None

    def list_variants(self, product_id: str) -> list[ProductVariant]:
        rows = self._fetchall(
            """SELECT data, stock, shiprocket_variant_id FROM product_variants
               WHERE product_id = %s ORDER BY sku""",
            (product_id,),
        )
        return [_variant_from_row(r) for r in rows]

    def save_variant(self, variant: ProductVariant) -> ProductVariant:
        try:
            self._execute(
                """INSERT INTO product_variants
                   (id, product_id, sku, shiprocket_variant_id, stock, is_active, data)
                   VALUES (%s, %s, %s, %s, %s, %s, %s)
                   ON CONFLICT (id) DO UPDATE
                   SET product_id = EXCLUDED.product_id,
                       sku = EXCLUDED.sku,
                       shiprocket_variant_id = EXCLUDED.shiprocket_variant_id,
                       stock = EXCLUDED.stock,
                       is_active = EXCLUDED.is_active,
                       data = EXCLUDED.data""",
                (
                    variant.id,
                    variant.product_id,
                    variant.sku,
                    variant.shiprocket_variant_id,
                    variant.stock,
                    variant.is_active,
                    Jsonb(variant.to_dict()),
                ),
            )
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateKeyError(_duplicate_field(exc)) from exc
        return variant

    def set_shiprocket_variant_id(self, variant_id: str, shiprocket_variant_id: str) -> bool:
        return self._execute(
            """UPDATE product_variants
               SET shiprocket_variant_id = %s,
                   data = jsonb_set(data, '{shiprocket_variant_id}', to_jsonb(%s::text))
               WHERE id = %s AND shiprocket_variant_id IS NULL""",
            (shiprocket_variant_id, shiprocket_variant_id, variant_id),
        ) > 0

    def get_category(self, category_id: str) -> Category | None:
        row = self._fetchone("SELECT data FROM categories WHERE id = %s", (category_id,))
        return Category.from_dict(row["data"]) if row else None

    def list_categories(self, *, offset: int = 0, limit: int = 100) -> tuple[list[Category], int]:
        with self._store.connection() as conn:
            total = conn.execute("SELECT COUNT(*) AS n FROM categories WHERE is_active").fetchone()["n"]
            rows = conn.execute(
                "SELECT data FROM categories WHERE is_active ORDER BY created_at LIMIT %s OFFSET %s",
                (limit, offset),
            ).fetchall()
        return [Category.from_dict(r["data"]) for r in rows], total

    def save_category(self, category: Category) -> Category:
        self._execute(
            """INSERT INTO categories (id, shiprocket_collection_id, is_active, data, created_at)
               VALUES (%s, %s, %s, %s, %s)
               ON CONFLICT (id) DO UPDATE
               SET shiprocket_collection_id = EXCLUDED.shiprocket_collection_id,
                   is_active = EXCLUDED.is_active,
                   data = EXCLUDED.data""",
            (
                category.id,
                category.shiprocket_collection_id,
                category.is_active,
                Jsonb(category.to_dict()),
                category.created_at,
            ),
        )
        return category

    def try_decrement_stock(self, variant_id: str, quantity: int) -> bool:
        return self._execute(
            """UPDATE product_variants SET stock = stock - %s
               WHERE id = %s AND stock >= %s""",
            (quantity, variant_id, quantity),
        ) == 1

    def increment_stock(self, variant_id: str, quantity: int) -> None:
        count = self._execute(
            "UPDATE product_variants SET stock = stock + %s WHERE id = %s",
            (quantity, variant_id),
        )
        if count == 0:
            raise NotFoundError(f"Variant {variant_id} not found")


# ── Payments / shipments / wishlists ──────────────────────────────────────


class PostgresPaymentRepository(_PostgresRepository, PaymentRepository):

    def create(self, payment: Payment) -> Payment:
        self._execute(
            """INSERT INTO payments (id, order_id, transaction_id, status, data)
               VALUES (%s, %s, %s, %s, %s)""",
            (payment.id, payment.order_id, payment.transaction_id, payment.status.value, Jsonb(payment.to_dict())),
        )
        return payment

    def _get_where(self, column: str, value: str) -> Payment | None:
        row = self._fetchone(f"SELECT data FROM payments WHERE {column} = %s LIMIT 1", (value,))
        return Payment.from_dict(row["data"]) if row else None

    def get(self, payment_id: str) -> Payment | None:
        return self._get_where("id", payment_id)

    def get_by_order(self, order_id: str) -> Payment | None:
        return self._get_where("order_id", order_id)

    def update(self, payment: Payment) -> Payment:
        payment.updated_at = utcnow()
        count = self._execute(
            "UPDATE payments SET transaction_id = %s, status = %s, data = %s WHERE id = %s",
            (payment.transaction_id, payment.status.value, Jsonb(payment.to_dict()), payment.id),
        )
        if count == 0:
            raise NotFoundError(f"Payment {payment.id} not found")
        return payment


class PostgresShipmentRepository(_PostgresRepository, ShipmentRepository):

    def create(self, shipment: Shipment) -> Shipment:
        try:
            self._execute(
                """INSERT INTO shipments (id, order_id, awb_code, status, data)
                   VALUES (%s, %s, %s, %s, %s)""",
                (shipment.id, shipment.order_id, shipment.awb_code, shipment.status.value, Jsonb(shipment.to_dict())),
            )
        except psycopg.errors.UniqueViolation as exc:
            raise DuplicateKeyError(_duplicate_field(exc)) from exc
        return shipment

    def _get_where(self, column: str, value: str) -> Shipment | None:
        row = self._fetchone(f"SELECT data FROM shipments WHERE {column} = %s", (value,))
        return Shipment.from_dict(row["data"]) if row else None

    def get(self, shipment_id: str) -> Shipment | None:
        return self._get_where("id", shipment_id)

    def get_by_order(self, order_id: str) -> Shipment | None:
        return self._get_where("order_id", order_id)

    def get_by_awb(self, awb_code: str) -> Shipment | None:
        return self._get_where("awb_code", awb_code)

    def update(self, shipment: Shipment) -> Shipment:
        shipment.updated_at = utcnow()
        count = self._execute(
            "UPDATE shipments SET awb_code = %s, status = %s, data = %s WHERE id = %s",
            (shipment.awb_code, shipment.status.value, Jsonb(shipment.to_dict()), shipment.id),
        )
        if count == 0:
            raise NotFoundError(f"Shipment {shipment.id} not found")
        return shipment


class PostgresWishlistRepository(_PostgresRepository, WishlistRepository):

    def get_by_user(self, user_id: str) -> Wishlist | None:
        row = self._fetchone("SELECT data FROM wishlists WHERE user_id = %s", (user_id,))
        return Wishlist.from_dict(row["data"]) if row else None

    def get_by_session(self, session_id: str) -> Wishlist | None:
        row = self._fetchone("SELECT data FROM wishlists WHERE session_id = %s", (session_id,))
        return Wishlist.from_dict(row["data"]) if row else None

    def save(self, wishlist: Wishlist) -> Wishlist:
        wishlist.updated_at = utcnow()
        self._execute(
            """INSERT INTO wishlists (id, user_id, session_id, data)
               VALUES (%s, %s, %s, %s)
               ON CONFLICT (id) DO UPDATE
               SET user_id = EXCLUDED.user_id,
                   session_id = EXCLUDED.session_id,
                   data = EXCLUDED.data""",
            (wishlist.id, wishlist.user_id, wishlist.session_id, Jsonb(wishlist.to_dict())),
        )
        return wishlist

    def delete(self, wishlist_id: str) -> bool:
        return self._execute("DELETE FROM wishlists WHERE id = %s", (wishlist_id,)) > 0
