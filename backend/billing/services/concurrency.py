# Overview: Persistence-boundary helpers for locking and transient-failure retry.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on the rows a write unit is about to change.

    SQLite renders no FOR UPDATE clause; there begin_write() already holds
    the database write lock for the whole unit.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the database write lock up front on SQLite.

    SQLite has no row locks; BEGIN IMMEDIATE serializes writers so a
    conditional UPDATE never races another client's in-flight transaction.
    Other dialects rely on lock_for_update and conditional UPDATEs instead.
    """
    # db.session is a scoped_session proxy; the transaction state lives on the Session
    if db.engine.dialect.name == "sqlite" and not db.session().in_transaction():
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run one billing write unit, retrying only transient storage failures.

    OperationalError (SQLite "database is locked", deadlocks) and
    StaleDataError (an Invoice or StockItem version changed under the ORM)
    roll the session back and re-run `func` from the start, with exponential
    backoff. Insufficient stock, version conflicts reported by the
    conditional UPDATE, validation and lifecycle errors are outcomes, not
    transient failures: they propagate on the first attempt.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    raise ValueError("attempts must be >= 1")
