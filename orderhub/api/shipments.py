"""Shipment routes.  All Shiprocket calls happen in the threadpool."""

from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from orderhub.services import get_services

router = APIRouter(prefix="/shipments", tags=["shipments"])


class AwbRequest(BaseModel):
    courier_id: int | None = None


@router.post("/orders/{order_id}")
def create_for_order(order_id: str):
    """Create the shipment and its Shiprocket order."""
    shipments = get_services().shipments
    shipment = shipments.create_shipment_from_order(order_id)
    return shipments.create_shiprocket_order(shipment.id).to_dict()


@router.get("/{shipment_id}")
def get_shipment(shipment_id: str):
    return get_services().shipments.get_shipment(shipment_id).to_dict()


@router.post("/{shipment_id}/awb")
def generate_awb(shipment_id: str, body: AwbRequest | None = None):
    courier_id = body.courier_id if body else None
    return get_services().shipments.assign_courier_and_generate_awb(shipment_id, courier_id).to_dict()


@router.post("/{shipment_id}/pickup")
def schedule_pickup(shipment_id: str):
    return get_services().shipments.schedule_pickup(shipment_id).to_dict()


@router.post("/{shipment_id}/cancel")
def cancel(shipment_id: str):
    return get_services().shipments.cancel_shipment(shipment_id).to_dict()


@router.get("/{shipment_id}/track")
def track(shipment_id: str):
    return get_services().shipments.track_shipment(shipment_id)
