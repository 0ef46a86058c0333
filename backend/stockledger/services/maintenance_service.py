# Overview: Administrative bulk deletion; deliberately outside the ledger invariants.

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import text

from ..config import LedgerSettings, current_settings
from ..errors import ValidationError
from ..extensions import db
from ..models import Customer, DocumentSeries, Location, Movement, MovementLine, MovementLineAddOn, PriceRule
from .concurrency import begin_write_transaction

logger = logging.getLogger(__name__)


PURGE_TARGETS = ("movements", "price_rules", "series", "locations", "customers")

# Targets that are referenced by movements and can only go together with them
REQUIRES_MOVEMENTS = ("locations", "customers")


def purge_data(targets: Iterable[str], *, settings: LedgerSettings | None = None) -> dict[str, int]:
    """
    Delete every row of the requested targets in one transaction.

    Must not run concurrently with ledger writes (maintenance window).
    Returns deleted row counts per table.
    """
    settings = settings or current_settings()
    wanted = set(targets)
    unknown = sorted(wanted - set(PURGE_TARGETS))
    if unknown:
        raise ValidationError(f"Unknown purge target(s): {', '.join(unknown)}", details={"targets": unknown})
    if not wanted:
        raise ValidationError("At least one purge target is required")
    missing_movements = sorted(t for t in REQUIRES_MOVEMENTS if t in wanted and "movements" not in wanted)
    if missing_movements:
        raise ValidationError(
            "Purging locations or customers requires purging movements too",
            details={"targets": missing_movements},
        )

    counts: dict[str, int] = {}
    try:
        begin_write_transaction()
        if db.engine.dialect.name == "postgresql":
            timeout_ms = int(settings.purge_timeout_seconds * 1000)
            db.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))

        if "movements" in wanted:
            counts["movement_line_add_ons"] = db.session.query(MovementLineAddOn).delete(synchronize_session=False)
            counts["movement_lines"] = db.session.query(MovementLine).delete(synchronize_session=False)
            db.session.query(Movement).update({Movement.related_movement_id: None}, synchronize_session=False)
            counts["movements"] = db.session.query(Movement).delete(synchronize_session=False)
        if "price_rules" in wanted:
            counts["price_rules"] = db.session.query(PriceRule).delete(synchronize_session=False)
        if "series" in wanted:
            counts["series"] = db.session.query(DocumentSeries).delete(synchronize_session=False)
        if "locations" in wanted:
            counts["locations"] = db.session.query(Location).delete(synchronize_session=False)
        if "customers" in wanted:
            counts["customers"] = db.session.query(Customer).delete(synchronize_session=False)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    db.session.expire_all()
    logger.warning("Purged %s: %s", ", ".join(sorted(wanted)), counts)
    return counts
