# Overview: Consignment (deposit) workflow over ordinary ledger movements.

"""
Deposit Manager

There is no deposit table. A customer's deposit is the stock held at the
retail location named after the customer:

- place:   transfer warehouse -> retail location (reference from the
           "deposit" series)
- convert: b2b_sale/b2c_sale out of the retail location
- return:  transfer retail location -> warehouse

Pending deposit stock is therefore just get_balances(retail_location).
Conversions never accept a negative-stock override: a customer can only
buy what was actually left with them.
"""

from __future__ import annotations

import logging

from ..errors import InvalidLocationPair, NotFound, ValidationError
from ..extensions import db
from ..models import Customer, Location, Movement, Product
from ..models.locations import LOCATION_RETAIL, LOCATION_WAREHOUSE
from .concurrency import begin_write_transaction, run_with_retry
from .location_service import find_or_create_retail_location, find_retail_location
from .movement_service import TYPE_B2B_SALE, TYPE_B2C_SALE, TYPE_TRANSFER, record_movement
from .stock_service import get_balances

logger = logging.getLogger(__name__)


NOTES_CONVERTED = "deposit converted"
NOTES_RETURNED = "deposit returned"

SALE_TYPE_BY_CHANNEL = {"B2B": TYPE_B2B_SALE, "B2C": TYPE_B2C_SALE}


def _get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def _deposit_location(customer: Customer) -> Location:
    location = find_retail_location(customer.name)
    if location is None:
        raise ValidationError(
            f"Customer {customer.name} has no deposit",
            details={"customer_id": customer.id},
        )
    return location


def _check_warehouse(warehouse_id: int) -> None:
    location = db.session.get(Location, warehouse_id) if warehouse_id is not None else None
    if location is None or not location.is_active or location.type != LOCATION_WAREHOUSE:
        raise InvalidLocationPair(
            "warehouse_id must be an active warehouse",
            details={"warehouse_id": warehouse_id},
        )


def ensure_deposit_location(customer: Customer) -> Location:
    """Retail location for the customer, created and committed if missing."""
    def _op():
        begin_write_transaction()
        location = find_or_create_retail_location(customer.name)
        db.session.commit()
        return location

    return run_with_retry(_op)


def place_deposit(
    customer_id: int,
    warehouse_id: int,
    lines,
    *,
    occurred_at=None,
    reference: str | None = None,
    notes: str | None = None,
) -> Movement:
    customer = _get_customer(customer_id)
    _check_warehouse(warehouse_id)
    location = ensure_deposit_location(customer)
    return record_movement(
        TYPE_TRANSFER,
        lines,
        from_location_id=warehouse_id,
        to_location_id=location.id,
        occurred_at=occurred_at,
        reference=reference,
        notes=notes,
        customer_id=customer.id,
    )


def convert(
    customer_id: int,
    lines,
    *,
    channel: str = "B2B",
    occurred_at=None,
    reference: str | None = None,
    notes: str | None = None,
    payment_status: str | None = None,
    paid_amount_cents: int | None = None,
) -> Movement:
    """
    Sell deposit stock to the customer holding it.

    Each line is checked against the pending deposit balance by the ledger's
    stock guard (InsufficientStock when it exceeds what is on deposit).
    """
    sale_type = SALE_TYPE_BY_CHANNEL.get(channel)
    if sale_type is None:
        raise ValidationError("channel must be B2B or B2C", details={"channel": channel})

    customer = _get_customer(customer_id)
    location = _deposit_location(customer)
    movement = record_movement(
        sale_type,
        lines,
        from_location_id=location.id,
        occurred_at=occurred_at,
        reference=reference,
        notes=notes or NOTES_CONVERTED,
        payment_status=payment_status,
        paid_amount_cents=paid_amount_cents,
        allow_negative_stock=False,
        customer_id=customer.id,
    )
    logger.info("Converted deposit of customer %s into %s", customer.id, movement.reference)
    return movement


def return_to_warehouse(
    customer_id: int,
    warehouse_id: int,
    lines,
    *,
    occurred_at=None,
    reference: str | None = None,
    notes: str | None = None,
) -> Movement:
    customer = _get_customer(customer_id)
    _check_warehouse(warehouse_id)
    location = _deposit_location(customer)
    return record_movement(
        TYPE_TRANSFER,
        lines,
        from_location_id=location.id,
        to_location_id=warehouse_id,
        occurred_at=occurred_at,
        reference=reference,
        notes=notes or NOTES_RETURNED,
        customer_id=customer.id,
    )


def _pending_items(location_id: int) -> list[dict]:
    balances = {sku: qty for sku, qty in get_balances(location_id).items() if qty > 0}
    if not balances:
        return []
    products = {
        p.sku: p for p in db.session.query(Product).filter(Product.sku.in_(list(balances))).all()
    }
    items = []
    for sku, qty in balances.items():
        product = products.get(sku)
        items.append({
            "sku": sku,
            "name": product.name if product else None,
            "cost_cents": product.cost_cents if product else None,
            "quantity": qty,
        })
    return items


def get_customer_deposit(customer_id: int) -> dict:
    customer = _get_customer(customer_id)
    location = find_retail_location(customer.name)
    items = _pending_items(location.id) if location else []
    return {
        "customer": customer.to_dict(),
        "location_id": location.id if location else None,
        "items": items,
        "units": sum(i["quantity"] for i in items),
        "cost_value_cents": sum((i["cost_cents"] or 0) * i["quantity"] for i in items),
    }


def list_deposit_customers() -> list[dict]:
    """Customers with deposit history and what they still hold."""
    customer_ids = [
        row[0]
        for row in (
            db.session.query(Movement.customer_id)
            .join(Location, Location.id == Movement.to_location_id)
            .filter(
                Movement.type == TYPE_TRANSFER,
                Movement.customer_id.isnot(None),
                Location.type == LOCATION_RETAIL,
            )
            .distinct()
            .all()
        )
    ]
    if not customer_ids:
        return []

    customers = (
        db.session.query(Customer)
        .filter(Customer.id.in_(customer_ids))
        .order_by(Customer.name.asc(), Customer.id.asc())
        .all()
    )
    result = []
    for customer in customers:
        location = find_retail_location(customer.name)
        items = _pending_items(location.id) if location else []
        result.append({
            "customer_id": customer.id,
            "name": customer.name,
            "location_id": location.id if location else None,
            "units": sum(i["quantity"] for i in items),
            "cost_value_cents": sum((i["cost_cents"] or 0) * i["quantity"] for i in items),
        })
    return result
