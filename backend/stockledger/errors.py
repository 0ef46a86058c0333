# backend/stockledger/errors.py
"""
Ledger error taxonomy.

Every error carries a machine-readable code, a category and a details dict
so callers can tell the three remedies apart:

- category "input":  fix the request and resend
- category "stock":  reduce quantities or resend with allow_negative_stock
- category "retry":  safe to retry the whole operation from scratch
- category "config": an administrator has to fix configuration
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by the ledger services."""

    code = "ledger_error"
    category = "input"
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "category": self.category,
            "details": self.details,
        }


class ValidationError(LedgerError):
    """Malformed request. Rejected before any write."""

    code = "validation_error"


class InvalidLocationPair(ValidationError):
    code = "invalid_location_pair"


class UnknownSku(ValidationError):
    code = "unknown_sku"


class InvalidPaymentAmount(ValidationError):
    code = "invalid_payment_amount"


class NotFound(LedgerError):
    code = "not_found"
    status_code = 404


class InsufficientStock(LedgerError):
    """Outgoing quantity exceeds the balance at the source location."""

    code = "insufficient_stock"
    category = "stock"
    status_code = 409


class ReturnExceedsSold(LedgerError):
    code = "return_exceeds_sold"
    status_code = 422


class SeriesExhaustedOrMisconfigured(LedgerError):
    code = "series_misconfigured"
    category = "config"
    status_code = 503


class ConcurrencyConflict(LedgerError):
    code = "concurrency_conflict"
    category = "retry"
    status_code = 409
