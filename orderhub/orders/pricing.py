"""Order pricing arithmetic.

total = subtotal - discount - prepaid_discount + shipping_charges + tax

Shiprocket is authoritative for money: when it sends a payable total,
that total is stored even if our arithmetic disagrees.  A disagreement
larger than the tolerance is logged for follow-up.
"""

from __future__ import annotations

import logging

from orderhub.orders.models import OrderItem, Pricing

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1.0


def _money(value: float) -> float:
    return round(value + 0.0, 2)


def items_subtotal(items: list[OrderItem]) -> float:
    return _money(sum(item.subtotal for item in items))


def compute_pricing(
    items: list[OrderItem],
    *,
    subtotal: float | None = None,
    discount: float = 0.0,
    prepaid_discount: float = 0.0,
    shipping_charges: float = 0.0,
    tax: float = 0.0,
    provider_total: float | None = None,
    tolerance: float = DEFAULT_TOLERANCE,
    reference: str = "",
) -> Pricing:
    """Build the pricing breakdown for a new order.

    Args:
        items: Snapshotted line items; used when ``subtotal`` is absent.
        subtotal: Provider-supplied subtotal, if any.
        provider_total: Provider's payable total; wins whenever present.
        reference: Identifier used in the mismatch log line.
    """
    base = items_subtotal(items) if subtotal is None else _money(subtotal)
    computed = _money(base - discount - prepaid_discount + shipping_charges + tax)
    computed = max(computed, 0.0)

    total = computed
    if provider_total is not None:
        total = _money(provider_total)
        if abs(total - computed) > tolerance:
            logger.warning(
                "Price mismatch for %s: provider total %.2f, computed %.2f (diff %.2f), using provider total",
                reference or "order",
                total,
                computed,
                total - computed,
            )

    return Pricing(
        subtotal=base,
        discount=_money(discount),
        prepaid_discount=_money(prepaid_discount),
        shipping_charges=_money(shipping_charges),
        tax=_money(tax),
        total=total,
    )
