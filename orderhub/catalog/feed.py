"""Shiprocket catalog feed: our products and categories in Shiprocket's shape.

Shiprocket pulls these pages to build its checkout catalog and we push
single products/collections through the outbound webhook.  Only active
variants that already carry a Shiprocket variant id are published; a
product with none is skipped from the feed.
"""

from __future__ import annotations

import logging
from typing import Any

from orderhub.catalog.models import Category, Product, ProductVariant
from orderhub.errors import BadRequestError, NotFoundError
from orderhub.storage.base import Store

logger = logging.getLogger(__name__)

_MAX_PAGE_SIZE = 250


def _page(page: int, limit: int) -> tuple[int, int]:
    page = max(page, 1)
    limit = min(max(limit, 1), _MAX_PAGE_SIZE)
    return (page - 1) * limit, limit


def format_variant(variant: ProductVariant) -> dict[str, Any]:
    return {
        "id": variant.shiprocket_variant_id,
        "title": variant.title,
        "price": f"{variant.price:.2f}",
        "quantity": variant.stock,
        "sku": variant.sku,
        "updated_at": variant.updated_at.isoformat(),
        "image": {"src": variant.image},
        "weight": variant.weight,
        "hsn": variant.hsn,
    }


def format_collection(category: Category) -> dict[str, Any]:
    return {
        "id": category.shiprocket_collection_id or category.id,
        "updated_at": category.updated_at.isoformat(),
        "body_html": category.description,
        "handle": category.slug,
        "image": {"src": category.image},
        "title": category.name,
        "created_at": category.created_at.isoformat(),
    }


class CatalogFeed:

    def __init__(self, store: Store, vendor: str = ""):
        self._store = store
        self._vendor = vendor

    def format_product(self, product: Product, strict: bool = False) -> dict[str, Any] | None:
        """Shiprocket product dict, or None if no variant is publishable.

        With ``strict`` an unpublishable product raises BadRequestError
        instead (used for pushes, where silently sending nothing is wrong).
        """
        variants = [
            v for v in self._store.catalog.list_variants(product.id)
            if v.is_active and v.shiprocket_variant_id
        ]
        if not variants:
            if strict:
                raise BadRequestError(
                    f"Product {product.id} has no active variants linked to Shiprocket"
                )
            return None

        category = self._store.catalog.get_category(product.category_id) if product.category_id else None
        return {
            "id": product.id,
            "title": product.name,
            "body_html": product.description,
            "vendor": self._vendor,
            "product_type": category.name if category else "",
            "handle": product.slug,
            "created_at": product.created_at.isoformat(),
            "updated_at": product.updated_at.isoformat(),
            "status": "active" if product.is_active else "inactive",
            "variants": [format_variant(v) for v in variants],
            "image": {"src": variants[0].image or product.image},
        }

    def _format_products(self, products: list[Product]) -> list[dict[str, Any]]:
        formatted = []
        for product in products:
            item = self.format_product(product)
            if item is None:
                logger.debug("Skipping product %s: no Shiprocket-linked variants", product.id)
                continue
            formatted.append(item)
        return formatted

    def fetch_products(self, page: int = 1, limit: int = 100) -> dict[str, Any]:
        offset, limit = _page(page, limit)
        products, total = self._store.catalog.list_products(offset=offset, limit=limit)
        return {"data": {"total": total, "products": self._format_products(products)}}

    def fetch_products_by_collection(self, collection_id: str, page: int = 1, limit: int = 100) -> dict[str, Any]:
        offset, limit = _page(page, limit)
        products, total = self._store.catalog.list_products(
            category_id=collection_id, offset=offset, limit=limit
        )
        return {"data": {"total": total, "products": self._format_products(products)}}

    def fetch_collections(self, page: int = 1, limit: int = 100) -> dict[str, Any]:
        offset, limit = _page(page, limit)
        categories, total = self._store.catalog.list_categories(offset=offset, limit=limit)
        return {"data": {"total": total, "collections": [format_collection(c) for c in categories]}}

    def product_webhook_data(self, product_id: str) -> dict[str, Any]:
        product = self._store.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")
        return self.format_product(product, strict=True)

    def collection_webhook_data(self, collection_id: str) -> dict[str, Any]:
        category = self._store.catalog.get_category(collection_id)
        if category is None:
            raise NotFoundError(f"Collection {collection_id} not found")
        return format_collection(category)
