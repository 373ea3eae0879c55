# Overview: Locking and retry helpers shared by every ledger write.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write(session=None) -> None:
    """
    Take the database write lock up front on SQLite.

    Two concurrent commits must not both read the same pre-decrement balance.
    Row locks do that on PostgreSQL/MySQL; SQLite needs BEGIN IMMEDIATE.
    """
    session = session or db.session
    conn = session.connection()
    if conn.dialect.name != "sqlite":
        return
    # Already holding a write transaction (nested service call)
    if conn.connection.dbapi_connection.in_transaction:
        return
    conn.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)


def run_in_transaction(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one write transaction and commit it.

    Any failure rolls the whole unit back before propagating; concurrency
    failures are retried with backoff like run_with_retry.
    """
    def _op():
        begin_write()
        try:
            result = func()
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        return result
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
