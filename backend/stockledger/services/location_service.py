"""
Location registry.

Warehouses and retail (customer) pseudo-locations are the endpoints of every
movement. Locations are soft-deleted; rows referenced by movements are only
removed by the administrative purge.
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import NotFound
from ..extensions import db
from ..models import Location
from ..models.locations import LOCATION_RETAIL
from .concurrency import lock_for_update

logger = logging.getLogger(__name__)


def get_location(location_id: int, *, require_active: bool = True, lock: bool = False) -> Location:
    query = db.session.query(Location).filter_by(id=location_id)
    if lock:
        query = lock_for_update(query)
    location = query.first()
    if location is None or (require_active and not location.is_active):
        raise NotFound(f"Location {location_id} not found or inactive", details={"location_id": location_id})
    return location


def list_locations(*, type: str | None = None, include_inactive: bool = False) -> list[Location]:
    query = db.session.query(Location)
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    if type:
        query = query.filter(Location.type == type)
    return query.order_by(Location.id.asc()).all()


def create_location(*, type: str, name: str, city: str | None = None, is_active: bool = True) -> Location:
    location = Location(type=type, name=name.strip(), city=city, is_active=is_active)
    db.session.add(location)
    db.session.commit()
    return location


def update_location(location_id: int, patch: dict) -> Location:
    location = get_location(location_id, require_active=False)
    for key in ("type", "name", "city", "is_active"):
        if key in patch:
            setattr(location, key, patch[key])
    db.session.commit()
    return location


def deactivate_location(location_id: int) -> Location:
    location = get_location(location_id)
    location.is_active = False
    db.session.commit()
    return location


def find_retail_location(name: str) -> Location | None:
    """Active retail location matching a customer name, case-insensitively."""
    cleaned = name.strip()
    return (
        db.session.query(Location)
        .filter(
            Location.type == LOCATION_RETAIL,
            Location.is_active.is_(True),
            func.lower(Location.name) == cleaned.lower(),
        )
        .order_by(Location.id.asc())
        .first()
    )


def find_or_create_retail_location(name: str) -> Location:
    """
    Resolve the retail location holding a customer's deposit stock, creating
    it when missing. Flushes but does not commit: callers own the transaction.
    """
    cleaned = name.strip()
    existing = find_retail_location(cleaned)
    if existing:
        return existing

    location = Location(type=LOCATION_RETAIL, name=cleaned, city="", is_active=True)
    db.session.add(location)
    db.session.flush()
    logger.info("Created retail location %s for %r", location.id, cleaned)
    return location
