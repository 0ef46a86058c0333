import sqlite3

import pytest
from sqlalchemy.exc import OperationalError

from stockledger.errors import ConcurrencyConflict
from stockledger.services.concurrency import is_transient, run_with_retry


class FakePgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pg error {pgcode}")
        self.pgcode = pgcode


def _operational(orig):
    return OperationalError("SELECT 1", {}, orig)


def _failing(exc, calls):
    def _op():
        calls.append(1)
        raise exc
    return _op


def test_lock_failures_are_retried_then_reported_as_conflict(db_session):
    calls = []
    exc = _operational(sqlite3.OperationalError("database is locked"))

    with pytest.raises(ConcurrencyConflict) as err:
        run_with_retry(_failing(exc, calls), attempts=3, backoff_base=0)

    assert len(calls) == 3
    assert err.value.category == "retry"


def test_transient_failure_then_success(db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) == 1:
            raise _operational(sqlite3.OperationalError("database is locked"))
        return "done"

    assert run_with_retry(_op, attempts=3, backoff_base=0) == "done"
    assert len(calls) == 2


def test_missing_table_is_not_retried(db_session):
    calls = []
    exc = _operational(sqlite3.OperationalError("no such table: movements"))

    with pytest.raises(OperationalError):
        run_with_retry(_failing(exc, calls), attempts=3, backoff_base=0)

    assert len(calls) == 1


def test_postgres_sqlstates():
    assert is_transient(_operational(FakePgError("40001")))
    assert is_transient(_operational(FakePgError("40P01")))
    assert not is_transient(_operational(FakePgError("42P01")))
