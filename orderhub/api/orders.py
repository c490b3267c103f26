"""Order routes."""

from __future__ import annotations

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from orderhub.orders.models import OrderFilters, OrderStatus, PaymentStatus
from orderhub.serialization import parse_datetime
from orderhub.services import get_services

router = APIRouter(prefix="/orders", tags=["orders"])


class StatusUpdate(BaseModel):
    status: OrderStatus


class CancelRequest(BaseModel):
    reason: str = Field(min_length=1)
    cancelled_by: str | None = None


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
    payment_type: str | None = None,
    user_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
):
    filters = OrderFilters(
        user_id=user_id,
        order_status=status,
        payment_status=payment_status,
        payment_type=payment_type,
        start_date=parse_datetime(start_date),
        end_date=parse_datetime(end_date),
    )
    result = get_services().orders.list_orders(filters, page, limit)
    result["orders"] = [o.to_dict() for o in result["orders"]]
    return result


@router.get("/stats")
def stats():
    return get_services().orders.get_order_stats().to_dict()


@router.get("/search")
def search(q: str = "", limit: int = Query(20, ge=1, le=100)):
    return {"orders": [o.to_dict() for o in get_services().orders.search_orders(q, limit)]}


@router.get("/number/{order_number}")
def get_by_number(order_number: str):
    return get_services().orders.get_order_by_number(order_number).to_dict()


@router.get("/{order_id}")
def get_order(order_id: str):
    return get_services().orders.get_order(order_id).to_dict()


@router.patch("/{order_id}/status")
def update_status(order_id: str, body: StatusUpdate):
    return get_services().orders.update_order_status(order_id, body.status).to_dict()


@router.post("/{order_id}/cancel")
def cancel(order_id: str, body: CancelRequest):
    order = get_services().orders.cancel_order(order_id, body.reason, body.cancelled_by)
    return order.to_dict()
