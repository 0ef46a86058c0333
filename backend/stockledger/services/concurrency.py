# Overview: Transaction helpers shared by every ledger-mutating service.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..config import current_settings
from ..errors import ConcurrencyConflict
from ..extensions import db

logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the whole write
    transaction is serialized by begin_write_transaction() instead.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    Open the write transaction before the first read of a check-then-write
    sequence.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE),
    so two writers can never both read the same balance or series counter.
    Other engines rely on lock_for_update() on the rows involved.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


# SQLSTATEs for serialization failure, deadlock and lock timeout
RETRYABLE_SQLSTATES = ("40001", "40P01", "55P03")
RETRYABLE_SQLITE_MESSAGES = ("database is locked", "database table is locked", "database is busy")


def is_transient(exc: Exception) -> bool:
    """Lock or serialization failures that a fresh attempt can succeed on."""
    if isinstance(exc, StaleDataError):
        return True
    orig = getattr(exc, "orig", None)
    sqlstate = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if sqlstate:
        return sqlstate in RETRYABLE_SQLSTATES
    message = str(orig if orig is not None else exc).lower()
    return any(m in message for m in RETRYABLE_SQLITE_MESSAGES)


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries lock and serialization failures (see is_transient) and
    StaleDataError (optimistic locking conflicts). Other OperationalErrors,
    such as a missing table, propagate unchanged. Each attempt starts
    from a rolled-back session. When the budget is exhausted the failure is
    surfaced as ConcurrencyConflict, which callers may retry from scratch.
    """
    settings = current_settings()
    if attempts is None:
        attempts = settings.retry_attempts
    if backoff_base is None:
        backoff_base = settings.retry_backoff_base

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if not is_transient(exc):
                raise
            if attempt >= attempts - 1:
                raise ConcurrencyConflict(
                    "Concurrent update conflict, retry the operation",
                    details={"attempts": attempts, "reason": type(exc).__name__},
                ) from exc
            logger.warning("Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
