"""Stock ledger: the only writer of product-variant stock counters.

Invariants:
- Stock never goes below zero
- ``decrement`` is all-or-nothing across the batch: one short line item
  rolls back every other line in the same call
- ``restore`` only adds units back and never raises for a single bad line
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from orderhub.errors import InsufficientStockError
from orderhub.storage.base import Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockMovement:
    variant_id: str
    quantity: int


def _merge(items: Iterable[StockMovement]) -> OrderedDict[str, int]:
    """Sum quantities per variant, ordered by variant id.

    A fixed order means concurrent batches lock rows in the same sequence.
    """
    totals: dict[str, int] = {}
    for item in items:
        if item.quantity <= 0:
            raise ValueError(f"quantity must be positive for variant {item.variant_id}")
        totals[item.variant_id] = totals.get(item.variant_id, 0) + item.quantity
    return OrderedDict(sorted(totals.items()))


class StockLedger:

    def __init__(self, store: Store):
        self._store = store

    def decrement(self, items: Iterable[StockMovement]) -> None:
        """Take stock for every item in one transaction.

        Raises:
            InsufficientStockError: naming the first variant whose guard
                failed; no variant's stock has changed.
        """
        totals = _merge(items)
        with self._store.transaction():
            for variant_id, quantity in totals.items():
                if not self._store.catalog.try_decrement_stock(variant_id, quantity):
                    logger.warning(
                        "Stock guard failed for variant %s (requested %d), rolling back batch",
                        variant_id,
                        quantity,
                    )
                    raise InsufficientStockError(variant_id, quantity)
        logger.info("Stock decremented for %d variant(s)", len(totals))

    def restore(self, items: Iterable[StockMovement]) -> int:
        """Add stock back for every item, best effort.  Returns lines restored."""
        restored = 0
        for item in items:
            try:
                self._store.catalog.increment_stock(item.variant_id, item.quantity)
                restored += 1
            except Exception:
                logger.exception(
                    "Failed to restore %d unit(s) to variant %s", item.quantity, item.variant_id
                )
        return restored
