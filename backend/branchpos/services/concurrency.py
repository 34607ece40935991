# Overview: Row locking and retry helpers shared by the transactional services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-check-write sequences.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    on the locked models catches the lost update at flush time instead.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 5, backoff_base: float = 0.05, retry_on: tuple = ()):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts), plus any extra exception
    types in retry_on. The session is rolled back before each retry, so func
    must redo its reads.
    """
    retryable = (OperationalError, StaleDataError) + tuple(retry_on)
    for attempt in range(attempts):
        try:
            return func()
        except retryable:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_session():
    """
    Commit the current session; roll back and re-raise on failure.

    A failed COMMIT leaves the session unusable until rolled back, so it is
    not retried here. Retries belong around the whole operation.
    """
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
