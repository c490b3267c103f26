"""Wishlist data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from orderhub.serialization import parse_datetime, to_jsonable, utcnow


@dataclass
class WishlistItem:
    product_id: str
    variant_id: str | None = None
    added_at: datetime = field(default_factory=utcnow)


@dataclass
class Wishlist:
    """Owned by exactly one of ``user_id`` or ``session_id``."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    user_id: str | None = None
    session_id: str | None = None
    items: list[WishlistItem] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def find(self, product_id: str, variant_id: str | None = None) -> WishlistItem | None:
        for item in self.items:
            if item.product_id == product_id and (variant_id is None or item.variant_id == variant_id):
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Wishlist:
        items = [
            WishlistItem(
                product_id=i["product_id"],
                variant_id=i.get("variant_id"),
                added_at=parse_datetime(i.get("added_at")) or utcnow(),
            )
            for i in d.get("items") or []
        ]
        return Wishlist(
            id=d["id"],
            user_id=d.get("user_id"),
            session_id=d.get("session_id"),
            items=items,
            created_at=parse_datetime(d.get("created_at")) or utcnow(),
            updated_at=parse_datetime(d.get("updated_at")) or utcnow(),
        )
