# Overview: Payment state of sale movements.

"""
Payment State Tracker

Not a separate store: payment_status / paid_amount_cents live on the sale
movement and are validated against the movement total, which is stable
because lines are never edited after creation.

PAYMENT STATUS:
- pending: nothing collected (paid_amount = 0)
- partial: 0 < paid_amount < total
- paid:    paid_amount = total

Defaults on creation: B2C sales are paid, B2B sales are pending.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..config import LedgerSettings, current_settings
from ..errors import InvalidPaymentAmount, NotFound, ValidationError
from ..extensions import db
from ..models import Movement
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_PARTIAL = "partial"
PAYMENT_STATUS_PAID = "paid"

PAYMENT_STATUSES = (PAYMENT_STATUS_PENDING, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PAID)

SALE_TYPES = ("b2b_sale", "b2c_sale")


def compute_lines_total(line_totals: Iterable[int | None]) -> int:
    return sum(total or 0 for total in line_totals)


def compute_movement_total(movement: Movement) -> int:
    return compute_lines_total(line.line_total_cents for line in movement.lines)


def default_status(movement_type: str) -> str:
    return PAYMENT_STATUS_PAID if movement_type == "b2c_sale" else PAYMENT_STATUS_PENDING


def resolve_payment(status: str, paid_amount_cents: int | None, total_cents: int) -> tuple[str, int]:
    """
    Validate a (status, amount) pair against the movement total and return
    the normalized pair. Out-of-range partial amounts are rejected, never
    clamped.
    """
    if status not in PAYMENT_STATUSES:
        raise ValidationError(
            f"payment_status must be one of {', '.join(PAYMENT_STATUSES)}",
            details={"payment_status": status},
        )

    if status == PAYMENT_STATUS_PAID:
        return status, total_cents
    if status == PAYMENT_STATUS_PENDING:
        return status, 0

    if paid_amount_cents is None or isinstance(paid_amount_cents, bool) or not isinstance(paid_amount_cents, int):
        raise InvalidPaymentAmount(
            "paid_amount_cents is required for partial payments",
            details={"paid_amount_cents": paid_amount_cents, "total_cents": total_cents},
        )
    if not 0 < paid_amount_cents < total_cents:
        raise InvalidPaymentAmount(
            "Partial payment must be greater than 0 and lower than the total",
            details={"paid_amount_cents": paid_amount_cents, "total_cents": total_cents},
        )
    return status, paid_amount_cents


def update_payment(
    movement_id: int,
    status: str,
    paid_amount_cents: int | None = None,
    *,
    settings: LedgerSettings | None = None,
) -> Movement:
    """
    Change the payment state of a sale.

    paid -> pending/partial is a reversal (refund handling). It is governed by
    LedgerSettings.allow_payment_reversal.
    """
    settings = settings or current_settings()

    def _op():
        begin_write_transaction()
        movement = lock_for_update(db.session.query(Movement).filter_by(id=movement_id)).first()
        if movement is None:
            raise NotFound(f"Movement {movement_id} not found", details={"movement_id": movement_id})
        if movement.type not in SALE_TYPES:
            raise ValidationError(
                "Payment applies to sale movements only",
                details={"movement_id": movement_id, "type": movement.type},
            )

        total = compute_movement_total(movement)
        new_status, new_amount = resolve_payment(status, paid_amount_cents, total)

        previous = movement.payment_status
        if previous == PAYMENT_STATUS_PAID and new_status != PAYMENT_STATUS_PAID:
            if not settings.allow_payment_reversal:
                raise ValidationError(
                    "Reverting a paid sale is disabled",
                    details={"movement_id": movement_id, "from": previous, "to": new_status},
                )
            logger.warning(
                "Payment reversal on movement %s: %s -> %s (%s cents)",
                movement_id, previous, new_status, new_amount,
            )

        movement.payment_status = new_status
        movement.paid_amount_cents = new_amount
        db.session.commit()
        return movement

    return run_with_retry(_op)
