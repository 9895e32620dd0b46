# Overview: Service-layer helpers for transactional retries on lock and write conflicts.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a transactional unit, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError. func must be safe to re-run from scratch: the session is
    rolled back before each retry.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
