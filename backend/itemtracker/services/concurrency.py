# Overview: Row locking, retry, and store-backed job leases.

from __future__ import annotations

import time
from datetime import timedelta

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import JobLease
from itemtracker.time_utils import utcnow


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). Any other exception rolls back the
    session and propagates.
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
        except Exception:
            db.session.rollback()
            raise
    if last_exc:
        raise last_exc


def acquire_lease(name: str, holder: str, *, ttl_seconds: int) -> bool:
    """
    Try to take the lease `name` for `holder`.

    Returns True when the caller now holds the lease. The take is a single
    conditional UPDATE (free or expired rows only), so two processes racing
    for the same lease cannot both win.
    """
    now = utcnow()
    expires_at = now + timedelta(seconds=ttl_seconds)

    if db.session.get(JobLease, name) is None:
        try:
            db.session.add(JobLease(name=name))
            db.session.commit()
        except IntegrityError:
            # Another process created the row first
            db.session.rollback()

    result = db.session.execute(
        update(JobLease)
        .where(
            JobLease.name == name,
            or_(
                JobLease.holder.is_(None),
                JobLease.expires_at.is_(None),
                JobLease.expires_at < now,
            ),
        )
        .values(holder=holder, acquired_at=now, expires_at=expires_at)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def release_lease(name: str, holder: str) -> bool:
    """Release the lease if `holder` still owns it."""
    result = db.session.execute(
        update(JobLease)
        .where(JobLease.name == name, JobLease.holder == holder)
        .values(holder=None, acquired_at=None, expires_at=None)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1
