"""Wishlists for signed-in users and guest sessions."""

from __future__ import annotations

import logging

from orderhub.errors import BadRequestError, NotFoundError
from orderhub.serialization import utcnow
from orderhub.storage.base import Store
from orderhub.wishlist.models import Wishlist, WishlistItem

logger = logging.getLogger(__name__)


class WishlistService:

    def __init__(self, store: Store):
        self._store = store

    def _find(self, user_id: str | None, session_id: str | None) -> Wishlist | None:
        if user_id:
            return self._store.wishlists.get_by_user(user_id)
        if session_id:
            return self._store.wishlists.get_by_session(session_id)
        raise BadRequestError("A user id or session id is required")

    def get_or_create(self, user_id: str | None = None, session_id: str | None = None) -> Wishlist:
        wishlist = self._find(user_id, session_id)
        if wishlist is None:
            wishlist = Wishlist(user_id=user_id or None, session_id=None if user_id else session_id)
            self._store.wishlists.save(wishlist)
        return wishlist

    def _validate(self, product_id: str, variant_id: str | None) -> None:
        catalog = self._store.catalog
        product = catalog.get_product(product_id)
        if product is None or not product.is_active:
            raise NotFoundError(f"Product {product_id} not found")
        if variant_id is None:
            return
        variant = catalog.get_variant(variant_id)
        if variant is None or not variant.is_active or variant.product_id != product_id:
            raise NotFoundError(f"Variant {variant_id} not found for product {product_id}")

    def add_item(
        self,
        product_id: str,
        variant_id: str | None = None,
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> Wishlist:
        self._validate(product_id, variant_id)
        wishlist = self.get_or_create(user_id, session_id)
        if wishlist.find(product_id, variant_id) is not None:
            raise BadRequestError("Item already in wishlist")
        wishlist.items.append(WishlistItem(product_id=product_id, variant_id=variant_id))
        wishlist.updated_at = utcnow()
        return self._store.wishlists.save(wishlist)

    def remove_item(
        self,
        product_id: str,
        variant_id: str | None = None,
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> Wishlist:
        wishlist = self._find(user_id, session_id)
        item = wishlist.find(product_id, variant_id) if wishlist else None
        if item is None:
            raise NotFoundError("Item not in wishlist")
        wishlist.items.remove(item)
        wishlist.updated_at = utcnow()
        return self._store.wishlists.save(wishlist)

    def clear(self, *, user_id: str | None = None, session_id: str | None = None) -> Wishlist:
        wishlist = self.get_or_create(user_id, session_id)
        wishlist.items = []
        wishlist.updated_at = utcnow()
        return self._store.wishlists.save(wishlist)

    def is_in_wishlist(
        self,
        product_id: str,
        variant_id: str | None = None,
        *,
        user_id: str | None = None,
        session_id: str | None = None,
    ) -> bool:
        wishlist = self._find(user_id, session_id)
        return wishlist is not None and wishlist.find(product_id, variant_id) is not None

    def count(self, *, user_id: str | None = None, session_id: str | None = None) -> int:
        wishlist = self._find(user_id, session_id)
        return len(wishlist.items) if wishlist else 0

    def delete(self, *, user_id: str | None = None, session_id: str | None = None) -> bool:
        wishlist = self._find(user_id, session_id)
        return wishlist is not None and self._store.wishlists.delete(wishlist.id)

    def merge_guest_wishlist(self, session_id: str, user_id: str) -> Wishlist:
        """Fold a guest session's wishlist into the user's and drop the guest list."""
        if not session_id or not user_id:
            raise BadRequestError("Both session id and user id are required")
        guest = self._store.wishlists.get_by_session(session_id)
        target = self.get_or_create(user_id=user_id)
        if guest is None:
            return target

        added = 0
        for item in guest.items:
            if target.find(item.product_id, item.variant_id) is None:
                target.items.append(item)
                added += 1
        target.updated_at = utcnow()
        self._store.wishlists.save(target)
        self._store.wishlists.delete(guest.id)
        logger.info("Merged %d item(s) from session %s into user %s", added, session_id, user_id)
        return target
