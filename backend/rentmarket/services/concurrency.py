# Overview: Service-layer helpers for row locking and retrying conflicting writes.

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    SELECT ... FOR UPDATE on an order or payment row.

    SQLite ignores the clause; there the SaleOrder version column is what
    catches a concurrent transition.
    """
    return query.with_for_update()


def run_with_retry(func: Callable[[], T], *, attempts: int = 3, backoff_base: float = 0.1) -> T:
    """
    Run `func` (which commits) and retry it when the write loses a race.

    RULES:
    - OperationalError (lock timeout, deadlock) and StaleDataError
      (SaleOrder.version_id moved underneath us) are retried with
      exponential backoff, then re-raised on the last attempt.
    - Any other exception is re-raised at once.
    - The session is rolled back on every failure so the caller never sees
      a half-applied transition.
    """
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts:
                logger.warning("Write conflict not resolved after %d attempt(s): %s", attempts, exc)
                raise
            delay = backoff_base * (2 ** (attempt - 1))
            logger.info("Write conflict on attempt %d, retrying in %.2fs", attempt, delay)
            time.sleep(delay)
        except Exception:
            db.session.rollback()
            raise
    raise RuntimeError("run_with_retry needs at least one attempt")
