"""Shipment data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from orderhub.serialization import parse_datetime, to_jsonable, utcnow


class ShipmentStatus(str, Enum):
    PENDING = "PENDING"
    PICKUP_SCHEDULED = "PICKUP_SCHEDULED"
    PICKED_UP = "PICKED_UP"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    RTO_INITIATED = "RTO_INITIATED"
    RTO_DELIVERED = "RTO_DELIVERED"
    CANCELLED = "CANCELLED"


@dataclass
class Dimensions:
    length: float = 10.0  # cm
    breadth: float = 10.0
    height: float = 10.0


@dataclass
class Shipment:
    order_id: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: ShipmentStatus = ShipmentStatus.PENDING
    shiprocket_order_id: str | None = None
    shiprocket_shipment_id: str | None = None
    awb_code: str | None = None
    courier_id: str | None = None
    courier_name: str | None = None
    weight: float = 0.5  # kg
    dimensions: Dimensions = field(default_factory=Dimensions)
    is_cod: bool = False
    pickup_scheduled_date: datetime | None = None
    shipped_date: datetime | None = None
    delivered_date: datetime | None = None
    rto_initiated_date: datetime | None = None
    tracking_history: list[dict[str, Any]] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Shipment:
        data = {k: v for k, v in d.items() if k in Shipment.__dataclass_fields__}
        data["status"] = ShipmentStatus(d.get("status", ShipmentStatus.PENDING))
        data["dimensions"] = Dimensions(**(d.get("dimensions") or {}))
        for key in ("pickup_scheduled_date", "shipped_date", "delivered_date", "rto_initiated_date"):
            data[key] = parse_datetime(d.get(key))
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return Shipment(**data)
