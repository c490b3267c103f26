"""Shared fixtures: an in-memory store seeded with a small catalog."""

from __future__ import annotations

import os
from typing import Any
from unittest.mock import MagicMock

import pytest

os.environ.setdefault("SHIPROCKET_WEBHOOK_SECRET", "test-webhook-secret")

from orderhub.catalog.models import Category, Product, ProductVariant, VariantAttributes  # noqa: E402
from orderhub.config import Settings  # noqa: E402
from orderhub.inventory.ledger import StockLedger  # noqa: E402
from orderhub.orders.service import OrderService  # noqa: E402
from orderhub.storage.memory import MemoryStore  # noqa: E402
from orderhub.webhooks.payload import ShiprocketWebhookPayload  # noqa: E402

SECRET = "test-webhook-secret"


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        shiprocket_webhook_secret=SECRET,
        shiprocket_api_key="test-api-key",
        shiprocket_checkout_base_url="https://checkout.test",
        shiprocket_api_base_url="https://shipping.test/v1/external",
        shiprocket_email="ops@example.com",
        shiprocket_password="pw",
    )


@pytest.fixture()
def store() -> MemoryStore:
    store = MemoryStore()
    category = Category(id="cat-1", name="T-Shirts", slug="t-shirts", shiprocket_collection_id="SRC-1")
    store.catalog.save_category(category)
    store.catalog.save_product(Product(
        id="prod-1",
        name="Classic Tee",
        slug="classic-tee",
        category_id="cat-1",
        images=["https://cdn.test/tee.jpg"],
    ))
    store.catalog.save_variant(ProductVariant(
        id="var-1",
        product_id="prod-1",
        sku="TEE-M-BLK",
        price=100.0,
        stock=10,
        shiprocket_variant_id="SRV-1",
        attributes=VariantAttributes(size="M", color_name="Black", color_hex="#000000"),
    ))
    store.catalog.save_variant(ProductVariant(
        id="var-2",
        product_id="prod-1",
        sku="TEE-L-BLK",
        price=120.0,
        stock=1,
        shiprocket_variant_id="SRV-2",
        attributes=VariantAttributes(size="L", color_name="Black"),
    ))
    store.catalog.save_variant(ProductVariant(
        id="var-3",
        product_id="prod-1",
        sku="TEE-XL-BLK",
        price=120.0,
        stock=5,
    ))
    return store


@pytest.fixture()
def ledger(store: MemoryStore) -> StockLedger:
    return StockLedger(store)


@pytest.fixture()
def mailer() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def orders(store: MemoryStore, ledger: StockLedger, mailer: MagicMock) -> OrderService:
    return OrderService(store, ledger, mailer)


def success_body(order_id: str = "SR-1001", **overrides: Any) -> dict[str, Any]:
    """A successful prepaid checkout for two units of SRV-1."""
    body: dict[str, Any] = {
        "order_id": order_id,
        "status": "SUCCESS",
        "cart_data": {"items": [{"variant_id": "SRV-1", "quantity": 2}]},
        "phone": "9876543210",
        "email": "asha@example.com",
        "shipping_address": {
            "first_name": "Asha",
            "last_name": "Rao",
            "line1": "12 MG Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
        "payment_type": "PREPAID",
        "payment_status": "SUCCESS",
        "total_amount_payable": 200,
    }
    body.update(overrides)
    return body


def success_payload(order_id: str = "SR-1001", **overrides: Any) -> ShiprocketWebhookPayload:
    return ShiprocketWebhookPayload.model_validate(success_body(order_id, **overrides))


def stock_of(store: MemoryStore, variant_id: str) -> int:
    return store.catalog.get_variant(variant_id).stock
