# Overview: Service-layer operations for returns against an original sale.

"""
Return Processing Service

A return is a b2b_return/b2c_return movement into a warehouse that points at
the original sale (related_movement_id). Per sku, the returned quantity over
all returns of a sale can never exceed what that sale sold. Unit prices are
copied from the sale so refunds match what was charged.
"""

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import Movement
from ..models.locations import LOCATION_WAREHOUSE
from .movement_service import (
    RETURN_TYPE_FOR_SALE,
    RETURN_TYPES,
    get_movement,
    record_movement,
    remaining_returnable,
    sold_quantities,
)


def record_return(
    sale_id: int,
    lines,
    *,
    warehouse_id: int | None = None,
    occurred_at=None,
    reference: str | None = None,
    notes: str | None = None,
) -> Movement:
    """
    Return goods from a sale into a warehouse.

    warehouse_id defaults to the sale's source location when that is a
    warehouse. The cap check and the write share one transaction
    (record_movement), so two concurrent returns cannot both use the last
    returnable units.
    """
    sale = get_movement(sale_id)
    return_type = RETURN_TYPE_FOR_SALE.get(sale.type)
    if return_type is None:
        raise ValidationError(
            f"Movement {sale_id} is not a sale",
            details={"movement_id": sale_id, "type": sale.type},
        )

    if warehouse_id is None:
        source = sale.from_location
        if source is None or source.type != LOCATION_WAREHOUSE:
            raise ValidationError(
                "warehouse_id is required when the sale did not leave a warehouse",
                details={"movement_id": sale_id},
            )
        warehouse_id = source.id

    return record_movement(
        return_type,
        lines,
        to_location_id=warehouse_id,
        occurred_at=occurred_at,
        reference=reference,
        notes=notes,
        related_movement_id=sale.id,
    )


def get_sale_returns(sale_id: int) -> list[Movement]:
    get_movement(sale_id)
    return (
        db.session.query(Movement)
        .filter(Movement.related_movement_id == sale_id, Movement.type.in_(RETURN_TYPES))
        .order_by(Movement.occurred_at.asc(), Movement.id.asc())
        .all()
    )


def get_return_summary(sale_id: int) -> dict:
    """Sold, returned and remaining quantity per sku for a sale."""
    sale = get_movement(sale_id)
    if sale.type not in RETURN_TYPE_FOR_SALE:
        raise ValidationError(f"Movement {sale_id} is not a sale", details={"movement_id": sale_id})

    sold = sold_quantities(sale)
    remaining = remaining_returnable(sale)
    return {
        "sale_id": sale.id,
        "reference": sale.reference,
        "items": [
            {
                "sku": sku,
                "sold": sold[sku],
                "returned": sold[sku] - remaining.get(sku, 0),
                "remaining": remaining.get(sku, 0),
            }
            for sku in sorted(sold)
        ],
    }
