# Overview: Document series allocation and administration.

"""
Document Series Allocator

INVARIANTS:
- Within a series, issued numbers are strictly increasing and never reused.
- allocate() never commits: the counter increment lives in the caller's
  transaction, so a movement that fails to commit does not consume a number.
- Allocation is serialized per series: the series row is locked
  (SELECT ... FOR UPDATE) and, on SQLite, the write transaction was opened
  with BEGIN IMMEDIATE by the caller.
- A year-scoped series only serves dates in its year. Missing series are a
  configuration problem and are never auto-created here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import or_

from ..config import current_settings
from ..errors import NotFound, SeriesExhaustedOrMisconfigured, ValidationError
from ..extensions import db
from ..models import DocumentSeries
from ..time_utils import utcnow
from .concurrency import begin_write_transaction, lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


SCOPE_SALE_B2C = "sale_b2c"
SCOPE_SALE_B2B = "sale_b2b"
SCOPE_RETURN = "return"
SCOPE_DEPOSIT = "deposit"
SCOPE_WEB = "web"

# Default series codes created by `flask system init`
DEFAULT_SERIES_CODES = {
    SCOPE_SALE_B2C: "B2C",
    SCOPE_SALE_B2B: "B2B",
    SCOPE_RETURN: "DEV",
    SCOPE_DEPOSIT: "DEP",
    SCOPE_WEB: "WEB",
}


@dataclass(frozen=True)
class SeriesAllocation:
    reference: str
    series_code: str
    series_year: int | None
    series_number: int


def format_reference(prefix: str, year: int | None, number: int, padding: int) -> str:
    padded = f"{number:0{padding}d}"
    if year:
        return f"{prefix}-{year}-{padded}"
    return f"{prefix}-{padded}"


def _select_series(scope: str, year: int, *, lock: bool) -> DocumentSeries | None:
    query = (
        db.session.query(DocumentSeries)
        .filter(
            DocumentSeries.scope == scope,
            DocumentSeries.is_active.is_(True),
            or_(DocumentSeries.year.is_(None), DocumentSeries.year == year),
        )
        # year-specific series win over year-less ones
        .order_by(DocumentSeries.year.is_(None).asc(), DocumentSeries.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def allocate(scope: str, as_of: datetime | None = None) -> SeriesAllocation:
    """
    Issue the next reference for a scope.

    Must run inside the write transaction of the movement the reference is
    for; the increment becomes visible only when that transaction commits.
    """
    as_of = as_of or utcnow()
    year = as_of.year

    series = _select_series(scope, year, lock=True)
    if series is None:
        raise SeriesExhaustedOrMisconfigured(
            f"No active document series configured for {scope} in {year}",
            details={"scope": scope, "year": year},
        )

    number = series.next_number
    series.next_number = number + 1
    db.session.flush()

    allocation = SeriesAllocation(
        reference=format_reference(series.prefix or series.code, series.year, number, series.padding),
        series_code=series.code,
        series_year=series.year,
        series_number=number,
    )
    logger.debug("Allocated %s from series %s", allocation.reference, series.code)
    return allocation


def issue_reference(scope: str, as_of: datetime | None = None) -> SeriesAllocation:
    """Allocate a reference in its own transaction (for external collaborators such as web-order sync)."""
    def _op():
        begin_write_transaction()
        allocation = allocate(scope, as_of)
        db.session.commit()
        return allocation

    return run_with_retry(_op)


# =============================================================================
# Administration
# =============================================================================

def list_series() -> list[DocumentSeries]:
    return (
        db.session.query(DocumentSeries)
        .order_by(DocumentSeries.scope.asc(), DocumentSeries.year.desc(), DocumentSeries.code.asc())
        .all()
    )


def get_series(code: str) -> DocumentSeries:
    series = db.session.query(DocumentSeries).filter_by(code=code).first()
    if series is None:
        raise NotFound(f"Series {code} not found", details={"code": code})
    return series


def create_series(
    *,
    code: str,
    name: str,
    scope: str,
    prefix: str | None = None,
    year: int | None = None,
    next_number: int = 1,
    padding: int | None = None,
    is_active: bool = True,
) -> DocumentSeries:
    if db.session.query(DocumentSeries).filter_by(code=code).first():
        raise ValidationError(f"Series {code} already exists", details={"code": code})

    series = DocumentSeries(
        code=code,
        name=name,
        scope=scope,
        prefix=prefix,
        year=year,
        next_number=next_number,
        padding=padding if padding is not None else current_settings().default_series_padding,
        is_active=is_active,
    )
    db.session.add(series)
    db.session.commit()
    return series


def update_series(code: str, patch: dict) -> DocumentSeries:
    """
    Administrative edit. Changes to next_number/padding/is_active apply to the
    next allocation; the row is locked so an in-flight allocation finishes first.
    """
    def _op():
        begin_write_transaction()
        series = lock_for_update(db.session.query(DocumentSeries).filter_by(code=code)).first()
        if series is None:
            raise NotFound(f"Series {code} not found", details={"code": code})
        for key in ("name", "scope", "prefix", "year", "next_number", "padding", "is_active"):
            if key in patch:
                setattr(series, key, patch[key])
        db.session.commit()
        return series

    return run_with_retry(_op)


def delete_series(code: str) -> None:
    series = get_series(code)
    db.session.delete(series)
    db.session.commit()
