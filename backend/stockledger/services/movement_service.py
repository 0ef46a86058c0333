# Overview: Service-layer operations for the movement ledger; the single write path for stock.

"""
Movement Ledger

DESIGN PRINCIPLES:
- Append-only: a movement and its lines are written once. Only reference,
  notes, occurred_at and the payment fields change afterwards.
- Stock is derived (see stock_service); there is no counter to update.
- One transaction per call: locations locked, balances checked, reference
  allocated, movement written, then a single commit. Any failure rolls the
  whole thing back, including the series increment.
- Movement types are a tagged variant: MOVEMENT_RULES maps each type to the
  location endpoints, channel, payment and series behaviour it requires.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func

from ..errors import (
    InsufficientStock,
    InvalidLocationPair,
    NotFound,
    ReturnExceedsSold,
    ValidationError,
)
from ..extensions import db
from ..models import Customer, Location, Movement, MovementLine, MovementLineAddOn
from ..models.locations import LOCATION_RETAIL, LOCATION_WAREHOUSE
from ..time_utils import normalize_datetime, utcnow
from ..validation import MAX_BPS, parse_optional_cents, parse_positive_int
from . import series_service
from .catalog_service import get_accessories, get_products
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry
from .payment_service import compute_lines_total, default_status, resolve_payment
from .pricing_service import apply_bps, price_for
from .stock_service import get_balances_for

logger = logging.getLogger(__name__)


# =============================================================================
# MOVEMENT TYPES
# =============================================================================

TYPE_PURCHASE = "purchase"
TYPE_B2B_SALE = "b2b_sale"
TYPE_B2C_SALE = "b2c_sale"
TYPE_B2B_RETURN = "b2b_return"
TYPE_B2C_RETURN = "b2c_return"
TYPE_TRANSFER = "transfer"
TYPE_ADJUSTMENT = "adjustment"

SALE_TYPES = (TYPE_B2B_SALE, TYPE_B2C_SALE)
RETURN_TYPES = (TYPE_B2B_RETURN, TYPE_B2C_RETURN)

REQUIRED = "required"
FORBIDDEN = "forbidden"
OPTIONAL = "optional"

ANY_LOCATION = (LOCATION_WAREHOUSE, LOCATION_RETAIL)


@dataclass(frozen=True)
class MovementRule:
    from_location: str
    to_location: str
    from_types: tuple[str, ...] = ANY_LOCATION
    to_types: tuple[str, ...] = ANY_LOCATION
    channel: str | None = None
    has_payment: bool = False
    series_scope: str | None = None
    negative_override: bool = False
    exactly_one_location: bool = False


MOVEMENT_RULES: dict[str, MovementRule] = {
    TYPE_PURCHASE: MovementRule(
        from_location=FORBIDDEN, to_location=REQUIRED, to_types=(LOCATION_WAREHOUSE,),
    ),
    TYPE_B2B_SALE: MovementRule(
        from_location=REQUIRED, to_location=FORBIDDEN, channel="B2B",
        has_payment=True, series_scope=series_service.SCOPE_SALE_B2B, negative_override=True,
    ),
    TYPE_B2C_SALE: MovementRule(
        from_location=REQUIRED, to_location=FORBIDDEN, channel="B2C",
        has_payment=True, series_scope=series_service.SCOPE_SALE_B2C, negative_override=True,
    ),
    TYPE_B2B_RETURN: MovementRule(
        from_location=FORBIDDEN, to_location=REQUIRED, to_types=(LOCATION_WAREHOUSE,),
        channel="B2B", series_scope=series_service.SCOPE_RETURN,
    ),
    TYPE_B2C_RETURN: MovementRule(
        from_location=FORBIDDEN, to_location=REQUIRED, to_types=(LOCATION_WAREHOUSE,),
        channel="B2C", series_scope=series_service.SCOPE_RETURN,
    ),
    # series scope depends on the destination, see _series_scope()
    TYPE_TRANSFER: MovementRule(from_location=REQUIRED, to_location=REQUIRED),
    TYPE_ADJUSTMENT: MovementRule(
        from_location=OPTIONAL, to_location=OPTIONAL, negative_override=True, exactly_one_location=True,
    ),
}

MOVEMENT_TYPES = tuple(MOVEMENT_RULES)

RETURN_TYPE_FOR_SALE = {TYPE_B2B_SALE: TYPE_B2B_RETURN, TYPE_B2C_SALE: TYPE_B2C_RETURN}

UPDATABLE_FIELDS = ("reference", "notes", "occurred_at")


# =============================================================================
# REQUEST NORMALIZATION (no database access)
# =============================================================================

@dataclass
class LineRequest:
    sku: str
    quantity: int
    unit_price_cents: int | None = None
    unit_cost_cents: int | None = None
    discount_bps: int = 0
    add_ons: list[dict] | None = None


def _parse_add_ons(raw, index: int) -> list[dict]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError(f"lines[{index}].add_ons must be a list")
    add_ons = []
    for j, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"lines[{index}].add_ons[{j}] must be an object")
        accessory_id = item.get("accessory_id")
        if isinstance(accessory_id, bool) or not isinstance(accessory_id, int):
            raise ValidationError(f"lines[{index}].add_ons[{j}].accessory_id must be an integer")
        add_ons.append({
            "accessory_id": accessory_id,
            "quantity": parse_positive_int(item.get("quantity", 1), f"lines[{index}].add_ons[{j}].quantity"),
            "price_cents": parse_optional_cents(item.get("price_cents"), f"lines[{index}].add_ons[{j}].price_cents"),
        })
    return add_ons


def parse_lines(raw_lines) -> list[LineRequest]:
    """Validate line payloads (dicts or LineRequest) and normalize them."""
    if not isinstance(raw_lines, (list, tuple)) or not raw_lines:
        raise ValidationError("At least one line is required")

    lines = []
    for i, raw in enumerate(raw_lines):
        if isinstance(raw, LineRequest):
            raw = raw.__dict__
        if not isinstance(raw, dict):
            raise ValidationError(f"lines[{i}] must be an object")

        sku = raw.get("sku")
        if not isinstance(sku, str) or not sku.strip():
            raise ValidationError(f"lines[{i}].sku is required")

        discount = raw.get("discount_bps") or 0
        if isinstance(discount, bool) or not isinstance(discount, int) or not 0 <= discount <= MAX_BPS:
            raise ValidationError(f"lines[{i}].discount_bps must be between 0 and {MAX_BPS}")

        lines.append(LineRequest(
            sku=sku.strip(),
            quantity=parse_positive_int(raw.get("quantity"), f"lines[{i}].quantity"),
            unit_price_cents=parse_optional_cents(raw.get("unit_price_cents"), f"lines[{i}].unit_price_cents"),
            unit_cost_cents=parse_optional_cents(raw.get("unit_cost_cents"), f"lines[{i}].unit_cost_cents"),
            discount_bps=discount,
            add_ons=_parse_add_ons(raw.get("add_ons"), i),
        ))
    return lines


def _parse_occurred_at(value) -> datetime:
    try:
        occurred_at = normalize_datetime(value)
    except ValueError:
        raise ValidationError("occurred_at must be an ISO-8601 datetime", details={"occurred_at": value})
    return occurred_at or utcnow()


def _check_endpoint(rule_value: str, location_id, field: str, movement_type: str) -> None:
    if location_id is not None and (isinstance(location_id, bool) or not isinstance(location_id, int)):
        raise InvalidLocationPair(f"{field} must be an integer", details={field: location_id})
    if rule_value == REQUIRED and location_id is None:
        raise InvalidLocationPair(f"{movement_type} requires {field}", details={"type": movement_type})
    if rule_value == FORBIDDEN and location_id is not None:
        raise InvalidLocationPair(f"{movement_type} does not accept {field}", details={"type": movement_type})


def _validate_shape(
    movement_type: str,
    channel: str | None,
    from_location_id,
    to_location_id,
    payment_status: str | None,
    allow_negative_stock: bool,
    related_movement_id,
) -> tuple[MovementRule, str | None]:
    rule = MOVEMENT_RULES.get(movement_type)
    if rule is None:
        raise ValidationError(
            f"type must be one of {', '.join(MOVEMENT_TYPES)}",
            details={"type": movement_type},
        )

    if rule.channel is None:
        if channel is not None:
            raise ValidationError(f"{movement_type} does not carry a channel", details={"channel": channel})
    elif channel is not None and channel != rule.channel:
        raise ValidationError(
            f"{movement_type} requires channel {rule.channel}",
            details={"channel": channel},
        )

    _check_endpoint(rule.from_location, from_location_id, "from_location_id", movement_type)
    _check_endpoint(rule.to_location, to_location_id, "to_location_id", movement_type)
    if rule.exactly_one_location and (from_location_id is None) == (to_location_id is None):
        raise InvalidLocationPair(
            f"{movement_type} requires exactly one of from_location_id/to_location_id",
            details={"type": movement_type},
        )
    if from_location_id is not None and from_location_id == to_location_id:
        raise InvalidLocationPair(
            "from_location_id and to_location_id must differ",
            details={"location_id": from_location_id},
        )

    if payment_status is not None and not rule.has_payment:
        raise ValidationError(f"{movement_type} does not carry a payment status")

    if allow_negative_stock and movement_type == TYPE_TRANSFER:
        raise ValidationError("allow_negative_stock is not accepted for transfers")

    if movement_type in RETURN_TYPES and related_movement_id is None:
        raise ValidationError(
            "Returns must reference the original sale (related_movement_id)",
            details={"type": movement_type},
        )

    return rule, rule.channel


# =============================================================================
# TRANSACTIONAL HELPERS (run inside the write transaction)
# =============================================================================

def _resolve_location(location_id: int, allowed_types: tuple[str, ...], field: str, *, lock: bool) -> Location:
    query = db.session.query(Location).filter_by(id=location_id)
    if lock:
        query = lock_for_update(query)
    location = query.first()
    if location is None or not location.is_active:
        raise InvalidLocationPair(
            f"{field} {location_id} not found or inactive",
            details={field: location_id},
        )
    if location.type not in allowed_types:
        raise InvalidLocationPair(
            f"{field} must be a {' or '.join(allowed_types)} location",
            details={field: location_id, "location_type": location.type},
        )
    return location


def _series_scope(movement_type: str, rule: MovementRule, to_location: Location | None) -> str | None:
    if movement_type == TYPE_TRANSFER:
        if to_location is not None and to_location.type == LOCATION_RETAIL:
            return series_service.SCOPE_DEPOSIT
        return None
    return rule.series_scope


def requested_by_sku(lines: list[LineRequest]) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for line in lines:
        totals[line.sku] += line.quantity
    return dict(totals)


def check_stock(location_id: int, requested: dict[str, int], *, allow_negative_stock: bool) -> None:
    """
    Compare requested outgoing quantities with the current balance.

    Must be called inside the write transaction of the movement.
    """
    balances = get_balances_for(requested.keys(), location_id)
    shortfalls = [
        {"sku": sku, "location_id": location_id, "requested": qty, "available": balances.get(sku, 0)}
        for sku, qty in sorted(requested.items())
        if qty > balances.get(sku, 0)
    ]
    if not shortfalls:
        return
    if allow_negative_stock:
        logger.warning("Negative stock override at location %s: %s", location_id, shortfalls)
        return
    raise InsufficientStock(
        "Insufficient stock for " + ", ".join(item["sku"] for item in shortfalls),
        details={"items": shortfalls},
    )


def returned_quantities(sale_id: int) -> dict[str, int]:
    rows = (
        db.session.query(MovementLine.sku, func.sum(MovementLine.quantity))
        .join(Movement, Movement.id == MovementLine.movement_id)
        .filter(Movement.related_movement_id == sale_id, Movement.type.in_(RETURN_TYPES))
        .group_by(MovementLine.sku)
        .all()
    )
    return {sku: int(qty) for sku, qty in rows}


def sold_quantities(sale: Movement) -> dict[str, int]:
    totals: dict[str, int] = defaultdict(int)
    for line in sale.lines:
        totals[line.sku] += line.quantity
    return dict(totals)


def remaining_returnable(sale: Movement) -> dict[str, int]:
    returned = returned_quantities(sale.id)
    return {sku: qty - returned.get(sku, 0) for sku, qty in sold_quantities(sale).items()}


def check_return_cap(sale: Movement, requested: dict[str, int]) -> None:
    remaining = remaining_returnable(sale)
    for sku, qty in sorted(requested.items()):
        available = remaining.get(sku, 0)
        if qty > available:
            raise ReturnExceedsSold(
                f"Cannot return {qty} x {sku}: only {available} left on sale {sale.id}",
                details={"sale_id": sale.id, "sku": sku, "requested": qty, "remaining": available},
            )


def _load_sale_for_return(sale_id: int, return_type: str) -> Movement:
    sale = lock_for_update(db.session.query(Movement).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"movement_id": sale_id})
    if sale.type not in SALE_TYPES:
        raise ValidationError(
            f"Movement {sale_id} is not a sale",
            details={"movement_id": sale_id, "type": sale.type},
        )
    if RETURN_TYPE_FOR_SALE[sale.type] != return_type:
        raise ValidationError(
            f"{return_type} cannot reference a {sale.type}",
            details={"movement_id": sale_id},
        )
    return sale


def _line_total(unit_price_cents: int | None, quantity: int, discount_bps: int, add_on_total: int) -> int | None:
    if unit_price_cents is None:
        return add_on_total or None
    return apply_bps(unit_price_cents * quantity, discount_bps) + add_on_total


def _build_lines(
    movement_type: str,
    channel: str | None,
    lines: list[LineRequest],
    sale: Movement | None,
) -> list[MovementLine]:
    products = get_products(line.sku for line in lines)
    accessories = get_accessories(a["accessory_id"] for line in lines for a in line.add_ons or [])

    # (unit price, discount) charged on the sale, so refunds match what was paid
    sale_terms: dict[str, tuple[int | None, int]] = {}
    if sale is not None:
        for sale_line in sale.lines:
            sale_terms.setdefault(sale_line.sku, (sale_line.unit_price_cents, sale_line.discount_bps or 0))

    built = []
    for line in lines:
        product = products[line.sku]
        unit_price = line.unit_price_cents
        discount_bps = line.discount_bps

        if movement_type in SALE_TYPES:
            if not product.is_active:
                raise ValidationError(f"Product {product.sku} is inactive", details={"sku": product.sku})
            if unit_price is None:
                _, unit_price, _ = price_for(product, channel)
            if unit_price is None:
                raise ValidationError(
                    f"Product {product.sku} has no {channel} price; supply unit_price_cents",
                    details={"sku": product.sku, "channel": channel},
                )
        elif movement_type in RETURN_TYPES and unit_price is None:
            unit_price, discount_bps = sale_terms.get(line.sku, (None, discount_bps))

        add_ons = []
        for item in line.add_ons or []:
            accessory = accessories[item["accessory_id"]]
            add_ons.append(MovementLineAddOn(
                accessory_id=accessory.id,
                name=accessory.name,
                quantity=item["quantity"],
                price_cents=item["price_cents"] if item["price_cents"] is not None else (accessory.price_cents or 0),
                cost_cents=accessory.cost_cents,
            ))
        add_on_total = sum(a.price_cents * a.quantity for a in add_ons)

        built.append(MovementLine(
            sku=product.sku,
            quantity=line.quantity,
            unit_price_cents=unit_price,
            unit_cost_cents=line.unit_cost_cents if line.unit_cost_cents is not None else product.cost_cents,
            discount_bps=discount_bps,
            line_total_cents=_line_total(unit_price, line.quantity, discount_bps, add_on_total),
            add_ons=add_ons,
        ))
    return built


# =============================================================================
# RECORDING
# =============================================================================

def record_movement(
    movement_type: str,
    lines,
    *,
    channel: str | None = None,
    from_location_id: int | None = None,
    to_location_id: int | None = None,
    occurred_at=None,
    reference: str | None = None,
    notes: str | None = None,
    payment_status: str | None = None,
    paid_amount_cents: int | None = None,
    allow_negative_stock: bool = False,
    customer_id: int | None = None,
    related_movement_id: int | None = None,
) -> Movement:
    """
    Record one movement atomically.

    Validation order: request shape, locations, skus, return cap, stock,
    reference allocation, payment. Nothing is written unless every check
    passes; the series increment commits together with the movement.

    Raises:
        ValidationError (and subclasses InvalidLocationPair, UnknownSku,
        InvalidPaymentAmount), NotFound, InsufficientStock, ReturnExceedsSold,
        SeriesExhaustedOrMisconfigured, ConcurrencyConflict
    """
    rule, channel = _validate_shape(
        movement_type, channel, from_location_id, to_location_id,
        payment_status, allow_negative_stock, related_movement_id,
    )
    parsed_lines = parse_lines(lines)
    when = _parse_occurred_at(occurred_at)
    reference = reference.strip() if isinstance(reference, str) and reference.strip() else None

    def _op():
        begin_write_transaction()

        from_location = None
        to_location = None
        if from_location_id is not None:
            # locking the source serializes concurrent stock checks on it
            from_location = _resolve_location(from_location_id, rule.from_types, "from_location_id", lock=True)
        if to_location_id is not None:
            to_location = _resolve_location(to_location_id, rule.to_types, "to_location_id", lock=False)

        if customer_id is not None and db.session.get(Customer, customer_id) is None:
            raise NotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})

        sale = None
        if movement_type in RETURN_TYPES:
            sale = _load_sale_for_return(related_movement_id, movement_type)
        elif related_movement_id is not None and db.session.get(Movement, related_movement_id) is None:
            raise NotFound(
                f"Movement {related_movement_id} not found",
                details={"movement_id": related_movement_id},
            )

        built_lines = _build_lines(movement_type, channel, parsed_lines, sale)
        requested = requested_by_sku(parsed_lines)

        if sale is not None:
            check_return_cap(sale, requested)

        if from_location is not None:
            check_stock(
                from_location.id,
                requested,
                allow_negative_stock=allow_negative_stock and rule.negative_override,
            )

        movement = Movement(
            type=movement_type,
            channel=channel,
            occurred_at=when,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            reference=reference,
            notes=notes,
            customer_id=customer_id if customer_id is not None else (sale.customer_id if sale else None),
            related_movement_id=related_movement_id,
        )

        scope = _series_scope(movement_type, rule, to_location)
        if reference is None and scope is not None:
            allocation = series_service.allocate(scope, when)
            movement.reference = allocation.reference
            movement.series_code = allocation.series_code
            movement.series_year = allocation.series_year
            movement.series_number = allocation.series_number

        if rule.has_payment:
            total = compute_lines_total(line.line_total_cents for line in built_lines)
            status, paid = resolve_payment(
                payment_status or default_status(movement_type), paid_amount_cents, total,
            )
            movement.payment_status = status
            movement.paid_amount_cents = paid

        movement.lines = built_lines
        db.session.add(movement)
        db.session.commit()

        logger.info(
            "Recorded %s movement %s (%s) with %d line(s)",
            movement.type, movement.id, movement.reference, len(built_lines),
        )
        return movement

    return run_with_retry(_op)


# =============================================================================
# UPDATES / READS / ADMIN DELETE
# =============================================================================

def get_movement(movement_id: int) -> Movement:
    movement = db.session.get(Movement, movement_id)
    if movement is None:
        raise NotFound(f"Movement {movement_id} not found", details={"movement_id": movement_id})
    return movement


def update_movement(movement_id: int, patch: dict) -> Movement:
    """Edit reference, notes or occurred_at. Lines and endpoints never change."""
    unknown = sorted(k for k in patch if k not in UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}", details={"fields": unknown})

    values = dict(patch)
    if "occurred_at" in values:
        if values["occurred_at"] is None:
            raise ValidationError("occurred_at cannot be null")
        values["occurred_at"] = _parse_occurred_at(values["occurred_at"])
    if "reference" in values and isinstance(values["reference"], str):
        values["reference"] = values["reference"].strip() or None

    def _op():
        begin_write_transaction()
        movement = get_movement(movement_id)
        for key, value in values.items():
            setattr(movement, key, value)
        db.session.commit()
        return movement

    return run_with_retry(_op)


def list_movements(
    *,
    types: list[str] | tuple[str, ...] | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    location_id: int | None = None,
    customer_id: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Movement], int]:
    """Newest first. Defaults to sale types."""
    types = tuple(types) if types else SALE_TYPES
    unknown = [t for t in types if t not in MOVEMENT_RULES]
    if unknown:
        raise ValidationError(f"Unknown movement type(s): {', '.join(unknown)}")

    query = db.session.query(Movement).filter(Movement.type.in_(types))
    if date_from is not None:
        query = query.filter(Movement.occurred_at >= date_from)
    if date_to is not None:
        query = query.filter(Movement.occurred_at <= date_to)
    if location_id is not None:
        query = query.filter(
            (Movement.from_location_id == location_id) | (Movement.to_location_id == location_id)
        )
    if customer_id is not None:
        query = query.filter(Movement.customer_id == customer_id)

    total = query.count()
    rows = (
        query.order_by(Movement.occurred_at.desc(), Movement.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return rows, total


def delete_movement(movement_id: int) -> None:
    """
    Administrative deletion of a single movement.

    Outside the ledger invariants, like purge: stock history changes. Returns
    pointing at the movement are detached first.
    """
    def _op():
        begin_write_transaction()
        movement = get_movement(movement_id)
        detached = (
            db.session.query(Movement)
            .filter(Movement.related_movement_id == movement_id)
            .update({Movement.related_movement_id: None}, synchronize_session=False)
        )
        db.session.delete(movement)
        db.session.commit()
        logger.warning("Deleted movement %s (%d related movement(s) detached)", movement_id, detached)

    run_with_retry(_op)
