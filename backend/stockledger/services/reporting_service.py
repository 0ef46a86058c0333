# Overview: Read-only sales aggregates over the movement ledger.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Category, Movement, MovementLine, Product, product_categories
from ..time_utils import normalize_datetime
from .movement_service import RETURN_TYPES, SALE_TYPES

REPORT_TYPES = SALE_TYPES + RETURN_TYPES
CHANNELS = ("B2B", "B2C")


def _parse_range(date_from, date_to) -> tuple[datetime | None, datetime | None]:
    try:
        start = normalize_datetime(date_from) if date_from else None
        end = normalize_datetime(date_to) if date_to else None
    except ValueError:
        raise ValidationError("date_from/date_to must be ISO-8601 datetimes")
    if start and end and start > end:
        raise ValidationError("date_from must be before date_to")
    return start, end


def _filtered(query, date_from, date_to, channel):
    start, end = _parse_range(date_from, date_to)
    if channel is not None and channel not in CHANNELS:
        raise ValidationError("channel must be B2B or B2C", details={"channel": channel})

    query = query.filter(Movement.type.in_(REPORT_TYPES))
    if start:
        query = query.filter(Movement.occurred_at >= start)
    if end:
        query = query.filter(Movement.occurred_at <= end)
    if channel:
        query = query.filter(Movement.channel == channel)
    return query


def _sign(movement_type: str) -> int:
    return -1 if movement_type in RETURN_TYPES else 1


def _line_rows(date_from, date_to, channel):
    query = (
        db.session.query(
            Movement.type,
            Movement.occurred_at,
            MovementLine.sku,
            MovementLine.quantity,
            func.coalesce(MovementLine.line_total_cents, 0),
        )
        .join(MovementLine, MovementLine.movement_id == Movement.id)
    )
    return _filtered(query, date_from, date_to, channel).all()


def sales_by_sku(*, date_from=None, date_to=None, channel: str | None = None) -> list[dict]:
    totals: dict[str, dict] = defaultdict(lambda: {"units": 0, "total_cents": 0})
    for movement_type, _, sku, quantity, line_total in _line_rows(date_from, date_to, channel):
        sign = _sign(movement_type)
        totals[sku]["units"] += sign * quantity
        totals[sku]["total_cents"] += sign * line_total

    names = {
        sku: name
        for sku, name in db.session.query(Product.sku, Product.name).filter(Product.sku.in_(list(totals))).all()
    } if totals else {}

    rows = [
        {"sku": sku, "name": names.get(sku), "units": v["units"], "total_cents": v["total_cents"]}
        for sku, v in totals.items()
    ]
    rows.sort(key=lambda r: (-r["total_cents"], r["sku"]))
    return rows


def sales_by_category(*, date_from=None, date_to=None, channel: str | None = None) -> list[dict]:
    """A product in several categories counts in each of them."""
    by_sku = {row["sku"]: row for row in sales_by_sku(date_from=date_from, date_to=date_to, channel=channel)}
    if not by_sku:
        return []

    memberships: dict[str, list[tuple[int, str]]] = defaultdict(list)
    rows = (
        db.session.query(product_categories.c.product_sku, Category.id, Category.name)
        .join(Category, Category.id == product_categories.c.category_id)
        .filter(product_categories.c.product_sku.in_(list(by_sku)))
        .all()
    )
    for sku, category_id, name in rows:
        memberships[sku].append((category_id, name))

    totals: dict[tuple[int | None, str], dict] = defaultdict(lambda: {"units": 0, "total_cents": 0})
    for sku, row in by_sku.items():
        for key in memberships.get(sku) or [(None, "Uncategorized")]:
            totals[key]["units"] += row["units"]
            totals[key]["total_cents"] += row["total_cents"]

    result = [
        {"category_id": cid, "name": name, "units": v["units"], "total_cents": v["total_cents"]}
        for (cid, name), v in totals.items()
    ]
    result.sort(key=lambda r: (-r["total_cents"], r["name"]))
    return result


def sales_by_month(*, date_from=None, date_to=None, channel: str | None = None) -> list[dict]:
    totals: dict[str, dict] = defaultdict(lambda: {"units": 0, "total_cents": 0})
    for movement_type, occurred_at, _, quantity, line_total in _line_rows(date_from, date_to, channel):
        sign = _sign(movement_type)
        month = occurred_at.strftime("%Y-%m")
        totals[month]["units"] += sign * quantity
        totals[month]["total_cents"] += sign * line_total
    return [{"month": month, **totals[month]} for month in sorted(totals)]


def sales_summary(*, date_from=None, date_to=None, channel: str | None = None) -> list[dict]:
    """Per channel: counts, net units and total, collected and outstanding amounts."""
    movements = _filtered(db.session.query(Movement), date_from, date_to, channel).all()

    summary = {
        ch: {
            "channel": ch,
            "sales_count": 0,
            "returns_count": 0,
            "units": 0,
            "total_cents": 0,
            "paid_cents": 0,
            "outstanding_cents": 0,
        }
        for ch in ((channel,) if channel else CHANNELS)
    }
    for movement in movements:
        entry = summary.get(movement.channel)
        if entry is None:
            continue
        sign = _sign(movement.type)
        total = movement.total_cents
        entry["units"] += sign * movement.units
        entry["total_cents"] += sign * total
        if movement.type in SALE_TYPES:
            entry["sales_count"] += 1
            paid = movement.paid_amount_cents or 0
            entry["paid_cents"] += paid
            entry["outstanding_cents"] += total - paid
        else:
            entry["returns_count"] += 1
    return list(summary.values())
