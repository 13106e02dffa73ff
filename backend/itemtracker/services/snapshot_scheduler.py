# Overview: Daily automatic snapshot batch and the background thread that fires it.

"""
Snapshot Scheduler

Once a day (SNAPSHOT_HOUR:SNAPSHOT_MINUTE in SNAPSHOT_TIMEZONE) every user's
items are snapshotted with type AUTO.

A batch only runs while holding the `daily-snapshots` job lease, so at most
one batch runs at a time across every process sharing the database. The
in-process lock short-circuits overlapping triggers inside one process
without touching the database.

One user's failure is rolled back, logged and counted; the batch moves on to
the next user.
"""

from __future__ import annotations

import os
import socket
import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from flask import Flask

from ..extensions import db
from ..models import SnapshotType, User
from . import history_service
from .concurrency import acquire_lease, release_lease

LEASE_NAME = "daily-snapshots"


@dataclass
class SnapshotRunResult:
    skipped: bool = False
    users: int = 0
    items: int = 0
    failed_user_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "skipped": self.skipped,
            "users": self.users,
            "items": self.items,
            "failed_user_ids": list(self.failed_user_ids),
        }


def next_run_at(now: datetime, *, hour: int, minute: int, tz_name: str) -> datetime:
    """
    Next wall-clock fire time strictly after `now`, in tz_name.

    Naive `now` is taken to be in tz_name already.
    """
    tz = ZoneInfo(tz_name)
    local_now = now.replace(tzinfo=tz) if now.tzinfo is None else now.astimezone(tz)
    candidate = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= local_now:
        candidate = candidate + timedelta(days=1)
    return candidate


class SnapshotScheduler:
    def __init__(self, app: Flask | None = None):
        self.app = None
        self._running = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.holder = f"{socket.gethostname()}:{os.getpid()}"
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.app = app
        app.extensions["snapshot_scheduler"] = self

    @property
    def is_running(self) -> bool:
        return self._running.locked()

    def run_for_all_users(self) -> SnapshotRunResult:
        """
        Snapshot every user's items now. Must be called inside an app context.

        Returns a result with skipped=True when another batch holds the lease
        (in this process or elsewhere).
        """
        logger = self.app.logger if self.app is not None else None
        result = SnapshotRunResult()

        if not self._running.acquire(blocking=False):
            if logger:
                logger.info("Snapshot batch already running in this process, skipping")
            result.skipped = True
            return result

        try:
            ttl = self.app.config.get("SNAPSHOT_LEASE_SECONDS", 3600) if self.app else 3600
            if not acquire_lease(LEASE_NAME, self.holder, ttl_seconds=ttl):
                if logger:
                    logger.info("Snapshot lease held elsewhere, skipping")
                result.skipped = True
                return result

            try:
                user_ids = [row.id for row in db.session.query(User.id).order_by(User.id.asc()).all()]
                for user_id in user_ids:
                    try:
                        result.items += history_service.create_user_snapshots(
                            user_id, SnapshotType.AUTO
                        )
                        result.users += 1
                    except Exception:
                        db.session.rollback()
                        result.failed_user_ids.append(user_id)
                        if logger:
                            logger.exception("Snapshot failed for user %s", user_id)
            finally:
                release_lease(LEASE_NAME, self.holder)

            if logger:
                logger.info(
                    "Snapshot batch done: %s users, %s items, %s failed",
                    result.users, result.items, len(result.failed_user_ids),
                )
            return result
        finally:
            self._running.release()

    def _loop(self) -> None:
        cfg = self.app.config
        while not self._stop.is_set():
            tz_name = cfg.get("SNAPSHOT_TIMEZONE", "Asia/Tbilisi")
            now = datetime.now(ZoneInfo(tz_name))
            fire_at = next_run_at(
                now,
                hour=cfg.get("SNAPSHOT_HOUR", 1),
                minute=cfg.get("SNAPSHOT_MINUTE", 0),
                tz_name=tz_name,
            )
            self.app.logger.info("Next snapshot batch at %s", fire_at.isoformat())
            if self._stop.wait((fire_at - now).total_seconds()):
                break
            with self.app.app_context():
                try:
                    self.run_for_all_users()
                except Exception:
                    self.app.logger.exception("Snapshot batch failed")
                finally:
                    db.session.remove()

    def start(self) -> None:
        if self.app is None:
            raise RuntimeError("SnapshotScheduler.init_app() was not called")
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="snapshot-scheduler")
        self._thread.start()
        self.app.logger.info("Snapshot scheduler started")

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


scheduler = SnapshotScheduler()
