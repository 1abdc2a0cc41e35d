# Overview: Row locking and optimistic-lock retry helpers shared by the stock and order services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write on a single row.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    is what catches a concurrent writer.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05):
    """
    Execute a load-mutate-commit unit, retrying on concurrency failures.

    StaleDataError means another request committed the same row first; the
    unit is re-run from the load so business checks (e.g. available stock)
    are evaluated again against the fresh row.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
