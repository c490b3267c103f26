"""Application error taxonomy.

Every error carries the HTTP status it surfaces as.  Route handlers let
these propagate; the exception handler in ``orderhub.api.app`` renders
them as ``{"error": message}``.
"""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class AuthenticationError(AppError):
    """Missing or invalid credentials (webhook signature)."""

    status_code = 401


class ForbiddenError(AppError):
    """Caller is not allowed to reach this resource."""

    status_code = 403


class NotFoundError(AppError):
    """Referenced order, product, variant or record is absent."""

    status_code = 404


class BadRequestError(AppError):
    """Invalid input or invalid state transition."""

    status_code = 400


class InsufficientStockError(BadRequestError):
    """A guarded stock decrement would take a variant below zero."""

    def __init__(self, variant_id: str, requested: int | None = None):
        detail = f"Insufficient stock for variant {variant_id}"
        if requested is not None:
            detail += f" (requested {requested})"
        super().__init__(detail)
        self.variant_id = variant_id
        self.requested = requested


class InternalServerError(AppError):
    """Unexpected downstream failure, e.g. a provider API error."""

    status_code = 500


class DuplicateKeyError(Exception):
    """A storage unique constraint rejected an insert.

    ``field`` names the violated key (``external_order_id``,
    ``order_number``, ``sku`` ...).
    """

    def __init__(self, field: str):
        super().__init__(f"duplicate value for {field}")
        self.field = field
