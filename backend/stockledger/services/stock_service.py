# Overview: Stock balances derived from the movement ledger.

"""
Stock Projection

INVARIANTS:
- Stock is never stored. The balance of (sku, location) is
  SUM(quantity where to = location) - SUM(quantity where from = location)
  over every movement line, optionally up to an inclusive `as_of`.
- StockProjection is an in-memory projection rebuilt from the movement log;
  it is used for verification and never written back.
- Reads take no locks. Writers that need a consistent balance call
  get_balance() inside their own write transaction.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable

from sqlalchemy import case, func

from ..extensions import db
from ..models import Movement, MovementLine, Product
from .location_service import get_location


def _signed_quantity(location_id: int):
    return case(
        (Movement.to_location_id == location_id, MovementLine.quantity),
        else_=-MovementLine.quantity,
    )


def _balance_query(location_id: int, as_of: datetime | None):
    query = (
        db.session.query(MovementLine.sku, func.coalesce(func.sum(_signed_quantity(location_id)), 0))
        .join(Movement, Movement.id == MovementLine.movement_id)
        .filter((Movement.to_location_id == location_id) | (Movement.from_location_id == location_id))
    )
    if as_of is not None:
        query = query.filter(Movement.occurred_at <= as_of)
    return query


def get_balance(sku: str, location_id: int, as_of: datetime | None = None) -> int:
    row = (
        _balance_query(location_id, as_of)
        .filter(MovementLine.sku == sku)
        .group_by(MovementLine.sku)
        .first()
    )
    return int(row[1]) if row else 0


def get_balances(location_id: int, as_of: datetime | None = None, *, include_zero: bool = False) -> dict[str, int]:
    """Balance per sku for every sku with history at the location."""
    rows = _balance_query(location_id, as_of).group_by(MovementLine.sku).all()
    balances = {sku: int(qty) for sku, qty in rows}
    if not include_zero:
        balances = {sku: qty for sku, qty in balances.items() if qty != 0}
    return dict(sorted(balances.items()))


def get_balances_for(skus: Iterable[str], location_id: int) -> dict[str, int]:
    """Balances for a set of skus in one query (missing skus are 0)."""
    wanted = sorted(set(skus))
    if not wanted:
        return {}
    rows = (
        _balance_query(location_id, None)
        .filter(MovementLine.sku.in_(wanted))
        .group_by(MovementLine.sku)
        .all()
    )
    found = {sku: int(qty) for sku, qty in rows}
    return {sku: found.get(sku, 0) for sku in wanted}


def get_stock_report(location_id: int) -> list[dict]:
    """Catalog listing with the quantity held at an active location."""
    get_location(location_id)
    balances = get_balances(location_id, include_zero=True)

    products = db.session.query(Product).order_by(Product.sku.asc()).all()
    report = []
    for product in products:
        quantity = balances.get(product.sku, 0)
        if not product.is_active and quantity == 0:
            continue
        report.append({
            "sku": product.sku,
            "name": product.name,
            "quantity": quantity,
            "cost_cents": product.cost_cents,
            "price_b2c_cents": product.price_b2c_cents,
            "price_b2b_cents": product.price_b2b_cents,
        })
    return report


class StockProjection:
    """
    Rebuildable (sku, location) -> quantity projection.

    apply() folds one movement in; rebuild() replays a whole log from empty.
    Both paths must agree with the SQL aggregate for the same history.
    """

    def __init__(self) -> None:
        self._balances: dict[tuple[str, int], int] = defaultdict(int)

    def apply(self, movement: Movement) -> None:
        for line in movement.lines:
            if movement.to_location_id is not None:
                self._balances[(line.sku, movement.to_location_id)] += line.quantity
            if movement.from_location_id is not None:
                self._balances[(line.sku, movement.from_location_id)] -= line.quantity

    def rebuild(self, movements: Iterable[Movement]) -> "StockProjection":
        self._balances.clear()
        for movement in movements:
            self.apply(movement)
        return self

    def balance(self, sku: str, location_id: int) -> int:
        return self._balances.get((sku, location_id), 0)

    def balances(self, location_id: int) -> dict[str, int]:
        return dict(sorted(
            (sku, qty) for (sku, loc), qty in self._balances.items()
            if loc == location_id and qty != 0
        ))

    def snapshot(self) -> dict[tuple[str, int], int]:
        return {key: qty for key, qty in self._balances.items() if qty != 0}


def replay_balances(as_of: datetime | None = None) -> StockProjection:
    """Full scan of the ledger in occurrence order."""
    query = db.session.query(Movement).order_by(Movement.occurred_at.asc(), Movement.id.asc())
    if as_of is not None:
        query = query.filter(Movement.occurred_at <= as_of)
    return StockProjection().rebuild(query.all())


def verify_projection() -> list[dict]:
    """
    Compare a full replay against the SQL aggregate for every location that
    has history. Returns mismatches (empty when consistent).
    """
    projection = replay_balances()

    location_ids = set()
    for (from_id, to_id) in db.session.query(Movement.from_location_id, Movement.to_location_id).distinct():
        location_ids.update(i for i in (from_id, to_id) if i is not None)

    mismatches = []
    for location_id in sorted(location_ids):
        sql = get_balances(location_id)
        replayed = projection.balances(location_id)
        for sku in sorted(set(sql) | set(replayed)):
            if sql.get(sku, 0) != replayed.get(sku, 0):
                mismatches.append({
                    "location_id": location_id,
                    "sku": sku,
                    "sql": sql.get(sku, 0),
                    "replayed": replayed.get(sku, 0),
                })
    return mismatches
