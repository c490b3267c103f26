"""Payment records and refunds.

The order's own ``payment_status`` is kept in step with the record here;
the order is the source of truth for what the customer sees.
"""

from __future__ import annotations

import logging

from orderhub.errors import BadRequestError, NotFoundError
from orderhub.orders.models import PaymentStatus
from orderhub.orders.service import OrderService
from orderhub.payments.models import Payment, PaymentRecordStatus
from orderhub.serialization import utcnow
from orderhub.storage.base import Store

logger = logging.getLogger(__name__)


class PaymentService:

    def __init__(self, store: Store, orders: OrderService):
        self._store = store
        self._orders = orders

    def _require(self, payment_id: str) -> Payment:
        payment = self._store.payments.get(payment_id)
        if payment is None:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def create_payment(
        self,
        order_id: str,
        method: str,
        shiprocket_checkout_id: str | None = None,
    ) -> Payment:
        order = self._orders.get_order(order_id)
        payment = Payment(
            order_id=order.id,
            amount=order.pricing.total,
            method=method,
            shiprocket_checkout_id=shiprocket_checkout_id,
        )
        self._store.payments.create(payment)
        logger.info("Payment %s created for order %s (%.2f INR)", payment.id, order.order_number, payment.amount)
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        return self._require(payment_id)

    def get_payment_by_order(self, order_id: str) -> Payment:
        payment = self._store.payments.get_by_order(order_id)
        if payment is None:
            raise NotFoundError(f"No payment for order {order_id}")
        return payment

    def mark_completed(self, payment_id: str, transaction_id: str) -> Payment:
        payment = self._require(payment_id)
        if payment.status == PaymentRecordStatus.COMPLETED:
            return payment
        payment.status = PaymentRecordStatus.COMPLETED
        payment.transaction_id = transaction_id
        payment.completed_at = utcnow()
        payment.failure_reason = None
        self._store.payments.update(payment)
        self._orders.update_payment_status(payment.order_id, PaymentStatus.COMPLETED)
        return payment

    def mark_failed(self, payment_id: str, reason: str) -> Payment:
        payment = self._require(payment_id)
        if payment.status == PaymentRecordStatus.COMPLETED:
            raise BadRequestError("A completed payment cannot be marked failed")
        payment.status = PaymentRecordStatus.FAILED
        payment.failure_reason = reason
        payment.retry_count += 1
        self._store.payments.update(payment)
        self._orders.update_payment_status(payment.order_id, PaymentStatus.FAILED)
        logger.warning("Payment %s failed (attempt %d): %s", payment.id, payment.retry_count, reason)
        return payment

    def initiate_refund(self, payment_id: str, amount: float | None = None, reason: str = "") -> Payment:
        """Refund ``amount`` (default: everything paid) of a completed payment."""
        payment = self._require(payment_id)
        if payment.status != PaymentRecordStatus.COMPLETED:
            raise BadRequestError(f"Only completed payments can be refunded (is {payment.status.value})")
        amount = payment.amount if amount is None else amount
        if amount <= 0 or amount > payment.amount:
            raise BadRequestError(f"Refund amount must be between 0 and {payment.amount:.2f}")

        payment.status = PaymentRecordStatus.REFUNDED
        payment.refund_amount = amount
        payment.refund_reason = reason
        payment.refunded_at = utcnow()
        self._store.payments.update(payment)
        self._orders.update_payment_status(payment.order_id, PaymentStatus.REFUNDED)
        logger.info("Refunded %.2f on payment %s", amount, payment.id)
        return payment
