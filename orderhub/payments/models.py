"""Payment data model."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from orderhub.serialization import parse_datetime, to_jsonable, utcnow


class PaymentRecordStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


@dataclass
class Payment:
    order_id: str
    amount: float
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    currency: str = "INR"
    method: str = ""
    status: PaymentRecordStatus = PaymentRecordStatus.PENDING
    shiprocket_checkout_id: str | None = None
    transaction_id: str | None = None
    failure_reason: str | None = None
    retry_count: int = 0
    refund_amount: float | None = None
    refund_reason: str | None = None
    refunded_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return to_jsonable(self)

    @staticmethod
    def from_dict(d: dict[str, Any]) -> Payment:
        data = {k: v for k, v in d.items() if k in Payment.__dataclass_fields__}
        data["status"] = PaymentRecordStatus(d.get("status", PaymentRecordStatus.PENDING))
        for key in ("refunded_at", "completed_at"):
            data[key] = parse_datetime(d.get(key))
        data["created_at"] = parse_datetime(d.get("created_at")) or utcnow()
        data["updated_at"] = parse_datetime(d.get("updated_at")) or utcnow()
        return Payment(**data)
