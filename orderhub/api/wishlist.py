"""Wishlist routes.  The owner comes from X-User-Id, else X-Session-Id."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header
from pydantic import BaseModel

from orderhub.services import get_services

router = APIRouter(prefix="/wishlist", tags=["wishlist"])


class Owner(BaseModel):
    user_id: str | None = None
    session_id: str | None = None


def owner(
    x_user_id: Annotated[str | None, Header()] = None,
    x_session_id: Annotated[str | None, Header()] = None,
) -> Owner:
    return Owner(user_id=x_user_id, session_id=x_session_id)


OwnerDep = Annotated[Owner, Depends(owner)]


class AddItem(BaseModel):
    product_id: str
    variant_id: str | None = None


class MergeRequest(BaseModel):
    session_id: str


@router.get("")
def get_wishlist(who: OwnerDep):
    return get_services().wishlists.get_or_create(who.user_id, who.session_id).to_dict()


@router.post("/items", status_code=201)
def add_item(body: AddItem, who: OwnerDep):
    wishlist = get_services().wishlists.add_item(
        body.product_id, body.variant_id, user_id=who.user_id, session_id=who.session_id
    )
    return wishlist.to_dict()


@router.delete("/items/{product_id}")
def remove_item(product_id: str, who: OwnerDep, variant_id: str | None = None):
    wishlist = get_services().wishlists.remove_item(
        product_id, variant_id, user_id=who.user_id, session_id=who.session_id
    )
    return wishlist.to_dict()


@router.delete("")
def clear(who: OwnerDep):
    return get_services().wishlists.clear(user_id=who.user_id, session_id=who.session_id).to_dict()


@router.get("/check/{product_id}")
def check(product_id: str, who: OwnerDep, variant_id: str | None = None):
    found = get_services().wishlists.is_in_wishlist(
        product_id, variant_id, user_id=who.user_id, session_id=who.session_id
    )
    return {"in_wishlist": found}


@router.get("/count")
def count(who: OwnerDep):
    return {"count": get_services().wishlists.count(user_id=who.user_id, session_id=who.session_id)}


@router.post("/merge")
def merge(body: MergeRequest, who: OwnerDep):
    """Fold a guest session's list into the signed-in user's."""
    return get_services().wishlists.merge_guest_wishlist(body.session_id, who.user_id or "").to_dict()
