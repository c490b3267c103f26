"""Repository interfaces shared by the storage backends.

Transactional contract:
- ``Store.transaction()`` groups repository calls into one atomic unit;
  an exception inside the block rolls every write back
- Nested ``transaction()`` blocks join the outer one (savepoints)
- ``CatalogRepository.try_decrement_stock`` is a conditional decrement:
  it never takes stock below zero and reports whether it applied
- Inserts that hit a unique key raise ``DuplicateKeyError(field)``
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from orderhub.catalog.models import Category, Product, ProductVariant
from orderhub.orders.models import Order, OrderFilters, OrderStats
from orderhub.payments.models import Payment
from orderhub.shipping.models import Shipment
from orderhub.wishlist.models import Wishlist


class OrderRepository(ABC):

    @abstractmethod
    def create(self, order: Order) -> Order:
        """Insert a new order.  Raises DuplicateKeyError on external id or number clash."""

    @abstractmethod
    def get(self, order_id: str) -> Order | None: ...

    def get_for_update(self, order_id: str) -> Order | None:
        """Like get(), but locked until the surrounding transaction ends."""
        return self.get(order_id)

    @abstractmethod
    def get_by_external_id(self, external_order_id: str) -> Order | None: ...

    @abstractmethod
    def get_by_number(self, order_number: str) -> Order | None: ...

    @abstractmethod
    def update(self, order: Order) -> Order: ...

    @abstractmethod
    def list(self, filters: OrderFilters, offset: int = 0, limit: int = 20) -> tuple[list[Order], int]:
        """Newest first.  Returns (page, total matching)."""

    @abstractmethod
    def search(self, term: str, limit: int = 20) -> list[Order]:
        """Case-insensitive match on number, external id, email, phone or name."""

    @abstractmethod
    def stats(self) -> OrderStats: ...

    @abstractmethod
    def link_guest_orders_by_email(self, email: str, user_id: str) -> int:
        """Attach orders with no user to ``user_id``.  Returns how many changed."""


class CatalogRepository(ABC):

    @abstractmethod
    def get_product(self, product_id: str) -> Product | None: ...

    @abstractmethod
    def list_products(
        self, *, active_only: bool = True, category_id: str | None = None,
        offset: int = 0, limit: int = 100,
    ) -> tuple[list[Product], int]: ...

    @abstractmethod
    def save_product(self, product: Product) -> Product: ...

    @abstractmethod
    def get_variant(self, variant_id: str) -> ProductVariant | None: ...

    @abstractmethod
    def get_variant_by_shiprocket_id(self, shiprocket_variant_id: str) -> ProductVariant | None: ...

    @abstractmethod
    def get_variant_by_sku(self, sku: str) -> ProductVariant | None: ...

    @abstractmethod
    def list_variants(self, product_id: str) -> list[ProductVariant]: ...

    @abstractmethod
    def save_variant(self, variant: ProductVariant) -> ProductVariant: ...

    @abstractmethod
    def set_shiprocket_variant_id(self, variant_id: str, shiprocket_variant_id: str) -> bool:
        """Link a variant to its Shiprocket id only if it has none yet."""

    @abstractmethod
    def get_category(self, category_id: str) -> Category | None: ...

    @abstractmethod
    def list_categories(self, *, offset: int = 0, limit: int = 100) -> tuple[list[Category], int]: ...

    @abstractmethod
    def save_category(self, category: Category) -> Category: ...

    @abstractmethod
    def try_decrement_stock(self, variant_id: str, quantity: int) -> bool:
        """``stock -= quantity`` only if ``stock >= quantity``.  False if not applied."""

    @abstractmethod
    def increment_stock(self, variant_id: str, quantity: int) -> None:
        """Raises NotFoundError if the variant does not exist."""


class PaymentRepository(ABC):

    @abstractmethod
    def create(self, payment: Payment) -> Payment: ...

    @abstractmethod
    def get(self, payment_id: str) -> Payment | None: ...

    @abstractmethod
    def get_by_order(self, order_id: str) -> Payment | None: ...

    @abstractmethod
    def update(self, payment: Payment) -> Payment: ...


class ShipmentRepository(ABC):

    @abstractmethod
    def create(self, shipment: Shipment) -> Shipment:
        """One shipment per order; raises DuplicateKeyError('order_id')."""

    @abstractmethod
    def get(self, shipment_id: str) -> Shipment | None: ...

    @abstractmethod
    def get_by_order(self, order_id: str) -> Shipment | None: ...

    @abstractmethod
    def get_by_awb(self, awb_code: str) -> Shipment | None: ...

    @abstractmethod
    def update(self, shipment: Shipment) -> Shipment: ...


class WishlistRepository(ABC):

    @abstractmethod
    def get_by_user(self, user_id: str) -> Wishlist | None: ...

    @abstractmethod
    def get_by_session(self, session_id: str) -> Wishlist | None: ...

    @abstractmethod
    def save(self, wishlist: Wishlist) -> Wishlist: ...

    @abstractmethod
    def delete(self, wishlist_id: str) -> bool: ...


class Store(ABC):
    """A storage backend: one repository per aggregate plus transactions."""

    orders: OrderRepository
    catalog: CatalogRepository
    payments: PaymentRepository
    shipments: ShipmentRepository
    wishlists: WishlistRepository

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Atomic block; rolls back every write if the block raises."""

    def init_schema(self) -> None:
        """Create tables if the backend needs them.  Idempotent."""
