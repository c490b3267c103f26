"""Validated schema for inbound Shiprocket checkout/shipment webhooks.

Unknown keys are ignored.  Known keys are typed: identifiers may arrive
as JSON numbers and are normalized to strings, money fields must be
numeric and non-negative, cart quantities must be positive integers.
Anything else raises BadRequestError before the payload reaches the
reconciler.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from orderhub.errors import BadRequestError


def _id_to_str(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("identifier must be a string or integer")
    if isinstance(value, int):
        return str(value)
    return value


# Shiprocket sends some identifiers as JSON numbers and some as strings.
ExternalId = Annotated[str, BeforeValidator(_id_to_str)]
OptionalExternalId = Annotated[str | None, BeforeValidator(_id_to_str)]


class _WebhookModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True, frozen=True)


class CartItem(_WebhookModel):
    variant_id: ExternalId = Field(min_length=1)
    quantity: int = Field(ge=1)


class CartData(_WebhookModel):
    items: list[CartItem] = Field(default_factory=list)

    @field_validator("items", mode="before")
    @classmethod
    def none_is_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value


class WebhookAddress(_WebhookModel):
    first_name: str | None = None
    last_name: str | None = None
    name: str | None = Field(default=None, validation_alias=AliasChoices("name", "full_name"))
    phone: OptionalExternalId = None
    email: str | None = None
    line1: str | None = Field(
        default=None, validation_alias=AliasChoices("line1", "address1", "address_line1", "address")
    )
    line2: str | None = Field(default=None, validation_alias=AliasChoices("line2", "address2", "address_line2"))
    city: str | None = None
    state: str | None = None
    pincode: OptionalExternalId = Field(
        default=None, validation_alias=AliasChoices("pincode", "zip", "postal_code", "pin_code")
    )
    country: str | None = None


class ShiprocketWebhookPayload(_WebhookModel):
    """One inbound delivery.

    Every field is optional; the classifier and the reconciler decide
    which ones a given event actually needs.
    """

    order_id: OptionalExternalId = None
    event: str | None = None
    status: str | None = None
    cart_data: CartData = Field(default_factory=CartData)

    phone: OptionalExternalId = None
    email: str | None = None
    shipping_address: WebhookAddress | None = None
    billing_address: WebhookAddress | None = None

    payment_type: str | None = None
    payment_status: str | None = None
    total_amount_payable: float | None = Field(default=None, ge=0)
    subtotal_price: float | None = Field(default=None, ge=0)
    coupon_codes: list[str] = Field(default_factory=list)
    coupon_discount: float = Field(default=0.0, ge=0)
    prepaid_discount: float = Field(default=0.0, ge=0)
    shipping_charges: float = Field(default=0.0, ge=0)
    tax: float = Field(default=0.0, ge=0)

    shipping_plan: str | None = None
    rto_prediction: str | None = None
    edd: OptionalExternalId = None
    cart_id: OptionalExternalId = None
    fastrr_order_id: OptionalExternalId = None

    shipment_status: str | None = None
    tracking_number: OptionalExternalId = None
    shipment_id: OptionalExternalId = None
    reason: str | None = None
    cancellation_reason: str | None = None

    @field_validator("cart_data", mode="before")
    @classmethod
    def none_is_empty_cart(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("coupon_codes", mode="before")
    @classmethod
    def none_is_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("coupon_discount", "prepaid_discount", "shipping_charges", "tax", mode="before")
    @classmethod
    def none_is_zero(cls, value: Any) -> Any:
        return 0.0 if value is None else value


def parse_payload(body: bytes) -> ShiprocketWebhookPayload:
    """Decode and validate a raw webhook body.  Call only after verification."""
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise BadRequestError("Webhook body is not valid JSON") from exc
    if not isinstance(data, dict):
        raise BadRequestError("Webhook body must be a JSON object")
    try:
        return ShiprocketWebhookPayload.model_validate(data)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
        raise BadRequestError(f"Invalid webhook payload: {fields}") from exc
