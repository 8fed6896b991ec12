# Overview: Locking helpers shared by the write workflows (sales, refunds, cancels, adjustments).

from __future__ import annotations

from sqlalchemy import text

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    begin_write() covers SQLite by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the current transaction as a writer.

    On SQLite this issues BEGIN IMMEDIATE so that concurrent writers queue
    on the database lock (bounded by the driver busy timeout) instead of
    both reading stale stock and failing at commit. Other dialects rely on
    FOR UPDATE row locks taken by the caller.
    """
    if db.engine.dialect.name != "sqlite":
        return
    driver_conn = db.session.connection().connection.driver_connection
    if driver_conn.in_transaction:
        return
    db.session.execute(text("BEGIN IMMEDIATE"))
