# Overview: Transaction boundary helpers: row locking and retry on conflicts.

from __future__ import annotations

import logging
import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientFailure
from ..extensions import db


logger = logging.getLogger(__name__)


def lock_for_update(query):
    """
    Apply row-level locking for read-modify-write operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows that carry version_id still get optimistic conflict detection there.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one transactional unit, retrying on concurrency-related failures.

    - Any exception rolls the session back, so a rejected operation never
      leaves partial writes behind.
    - OperationalError (deadlocks, locks) and StaleDataError (optimistic
      locking conflicts) are retried with exponential backoff; once attempts
      are exhausted they surface as TransientFailure.
    - Every other exception (domain errors included) propagates unchanged.
    """
    if attempts is None:
        attempts = current_app.config.get("TRANSACTION_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("TRANSACTION_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Transaction failed after %d attempts: %s", attempts, exc)
                raise TransientFailure("Concurrent update conflict, please retry") from exc
            logger.info("Transaction conflict (attempt %d/%d), retrying", attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise TransientFailure()
