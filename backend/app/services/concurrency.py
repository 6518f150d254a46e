# Overview: Row locking and retry helpers for write transactions.

from __future__ import annotations

import time
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id column
    and the database-wide write lock do the serializing.
    """
    return query.with_for_update()


def _retry_settings(attempts: Optional[int], backoff_base: Optional[float]) -> tuple[int, float]:
    if has_app_context():
        attempts = attempts or current_app.config.get("WRITE_RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("WRITE_RETRY_BACKOFF", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(
    func,
    *,
    attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
    retry_on: tuple = (OperationalError,),
    rollback: Optional[Callable[[], None]] = None,
):
    """
    Execute a DB operation with retry on lock-wait failures.

    Retries on OperationalError (deadlocks, "database is locked") with
    exponential backoff. Business errors and lost optimistic locks are not
    retried: the session is rolled back and the error propagates, because the
    caller has to decide again on fresh data.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    rollback = rollback or db.session.rollback
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning("Retrying write after lock failure (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            # Nothing from a failed attempt may leak into the next unit of work
            rollback()
            raise
    if last_exc:
        raise last_exc
