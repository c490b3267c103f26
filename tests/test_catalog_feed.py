"""Tests for the Shiprocket catalog feed format."""

from __future__ import annotations

import pytest

from orderhub.catalog.feed import CatalogFeed, format_collection, format_variant
from orderhub.catalog.models import Category, Product, ProductVariant, VariantAttributes
from orderhub.errors import BadRequestError, NotFoundError


@pytest.fixture()
def feed(store) -> CatalogFeed:
    return CatalogFeed(store, vendor="orderhub")


class TestFormatVariant:

    def test_shape(self):
        variant = ProductVariant(
            id="v", product_id="p", sku="S1", price=499.5, stock=7, shiprocket_variant_id="SRV-9",
            attributes=VariantAttributes(size="M", color_name="Red"), images=["https://cdn.test/v.jpg"],
        )
        data = format_variant(variant)
        assert data["id"] == "SRV-9"
        assert data["title"] == "Red / M"
        assert data["price"] == "499.50"
        assert data["quantity"] == 7
        assert data["image"] == {"src": "https://cdn.test/v.jpg"}

    def test_default_title(self):
        assert format_variant(ProductVariant(shiprocket_variant_id="x"))["title"] == "Default"


class TestFormatProduct:

    def test_only_linked_active_variants(self, feed, store):
        store.catalog.save_variant(ProductVariant(
            id="var-4", product_id="prod-1", sku="TEE-S-BLK", shiprocket_variant_id="SRV-4", is_active=False,
        ))
        data = feed.format_product(store.catalog.get_product("prod-1"))
        assert sorted(v["sku"] for v in data["variants"]) == ["TEE-L-BLK", "TEE-M-BLK"]
        assert data["product_type"] == "T-Shirts"
        assert data["vendor"] == "orderhub"
        assert data["status"] == "active"
        assert data["image"] == {"src": "https://cdn.test/tee.jpg"}

    def test_unpublishable_product(self, feed, store):
        product = store.catalog.save_product(Product(id="prod-2", name="Draft"))
        assert feed.format_product(product) is None
        with pytest.raises(BadRequestError):
            feed.format_product(product, strict=True)


class TestFetch:

    def test_fetch_products(self, feed, store):
        store.catalog.save_product(Product(id="prod-2", name="Draft"))
        data = feed.fetch_products(page=1, limit=10)["data"]
        assert data["total"] == 2
        assert [p["id"] for p in data["products"]] == ["prod-1"]

    def test_inactive_products_hidden(self, feed, store):
        product = store.catalog.get_product("prod-1")
        product.is_active = False
        store.catalog.save_product(product)
        assert feed.fetch_products()["data"] == {"total": 0, "products": []}

    def test_fetch_products_by_collection(self, feed):
        assert feed.fetch_products_by_collection("cat-1")["data"]["total"] == 1
        assert feed.fetch_products_by_collection("cat-x")["data"]["total"] == 0

    def test_fetch_collections(self, feed, store):
        store.catalog.save_category(Category(id="cat-2", name="Hoodies", slug="hoodies", is_active=False))
        data = feed.fetch_collections()["data"]
        assert data["total"] == 1
        assert data["collections"][0]["id"] == "SRC-1"

    def test_collection_id_falls_back_to_local_id(self):
        assert format_collection(Category(id="cat-9", name="X"))["id"] == "cat-9"


class TestWebhookData:

    def test_product_webhook_data(self, feed):
        assert feed.product_webhook_data("prod-1")["id"] == "prod-1"

    def test_missing(self, feed):
        with pytest.raises(NotFoundError):
            feed.product_webhook_data("nope")
        with pytest.raises(NotFoundError):
            feed.collection_webhook_data("nope")
