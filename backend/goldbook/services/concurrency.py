# Overview: Locking, retry and unit-of-work helpers shared by the write services.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import PersistenceError
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write of balances and buckets.

    NOTE: SQLite ignores SELECT ... FOR UPDATE (writers are serialized by the
    database lock instead), other DBs will honor it.
    """
    return query.with_for_update()


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


def run_atomic(func, *, label: str, attempts: int | None = None):
    """
    Run func and commit as one unit of work.

    Any exception rolls the whole unit back and is re-raised; storage failures
    surface as PersistenceError. attempts defaults to LOCK_RETRY_ATTEMPTS.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 1)

    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_op, attempts=max(1, attempts))
    except (SQLAlchemyError, StaleDataError) as exc:
        logger.exception("%s failed and was rolled back", label)
        raise PersistenceError(f"{label} failed: storage error", details={"error": str(exc)}) from exc
