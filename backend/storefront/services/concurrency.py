# Overview: Retry helpers for upserts and counters that race across requests.

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


TRANSIENT_ERRORS = (OperationalError, StaleDataError)

# A concurrent request inserted the same unique key first; re-running the
# upsert finds that row and updates it instead.
UPSERT_RACE_ERRORS = (IntegrityError,) + TRANSIENT_ERRORS


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05, retry_on=TRANSIENT_ERRORS):
    """
    Execute a DB operation, rolling back and retrying on retry_on errors.

    The last error propagates once attempts are used up; a store outage
    must surface to the caller, not be mistaken for "no data".
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
