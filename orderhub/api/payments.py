"""Payment routes."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel, Field

from orderhub.services import get_services

router = APIRouter(prefix="/payments", tags=["payments"])


class RefundRequest(BaseModel):
    amount: float | None = Field(default=None, gt=0)
    reason: str = ""


@router.get("/order/{order_id}")
def get_by_order(order_id: str):
    return get_services().payments.get_payment_by_order(order_id).to_dict()


@router.get("/{payment_id}")
def get_payment(payment_id: str):
    return get_services().payments.get_payment(payment_id).to_dict()


@router.post("/{payment_id}/refund")
def refund(payment_id: str, body: RefundRequest):
    return get_services().payments.initiate_refund(payment_id, body.amount, body.reason).to_dict()
