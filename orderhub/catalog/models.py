"""Catalog data models.

A variant's ``stock`` is owned here but only ever changed through
``orderhub.inventory.ledger.StockLedger``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from orderhub.serialization import parse_datetime, to_jsonable, utcnow


@dataclass
class VariantAttributes:
    size: str = ""
    color_name: str = ""
    color_hex: str = ""


@dataclass
class ProductVariant:
    """A purchasable SKU (size/colour combination) with its own stock count."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    product_id: str = ""
    sku: str = ""
    price: float = 0.0
    stock: int = 0
    shiprocket_variant_id: str | None = None
    attributes: VariantAttributes = field(default_factory=VariantAttributes)
    images: list[str] = field(default_factory=list)
    weight: float = 0.5  # kg
    hsn: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def title(self) -> str:
        parts = [p for p in (self.attributes.color_name, self.attributes.size) if p]
        return " / ".join(parts) if parts else "Default"

    @property
    def image(self) -> str:
        return self.images[0] if self.images else ""

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> ProductVariant:
        data = {k: v for k, v in d.items() if k in ProductVariant.__dataclass_fields__}
        data["attributes"] = VariantAttributes(**(d.get("attributes") or {}))
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return ProductVariant(**data)


@dataclass
class Product:
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    slug: str = ""
    description: str = ""
    category_id: str | None = None
    vendor: str = ""
    images: list[str] = field(default_factory=list)
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def image(self) -> str:
        return self.images[0] if self.images else ""

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Product:
        data = {k: v for k, v in d.items() if k in Product.__dataclass_fields__}
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return Product(**data)


@dataclass
class Category:
    """A product category; Shiprocket calls these collections."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    name: str = ""
    slug: str = ""
    description: str = ""
    image: str = ""
    shiprocket_collection_id: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Category:
        data = {k: v for k, v in d.items() if k in Category.__dataclass_fields__}
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return Category(**data)
