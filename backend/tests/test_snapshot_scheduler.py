# Overview: Pytest coverage for the snapshot batch, its job lease, and fire-time computation.

"""
Snapshot scheduler tests.

Verifies:
- A job lease can be held by one holder at a time and expires
- The batch skips while another holder owns the lease
- The batch snapshots every user and survives one user's failure
- Next fire time is computed in the configured timezone
"""

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from itemtracker.models import ItemSnapshot, JobLease
from itemtracker.services import history_service
from itemtracker.services.concurrency import acquire_lease, release_lease
from itemtracker.services.snapshot_scheduler import LEASE_NAME, SnapshotScheduler, next_run_at
from itemtracker.time_utils import utcnow


class TestJobLease:

    def test_single_holder(self, db_session):
        assert acquire_lease("job", "host-a:1", ttl_seconds=60) is True
        assert acquire_lease("job", "host-b:2", ttl_seconds=60) is False

        assert release_lease("job", "host-b:2") is False
        assert release_lease("job", "host-a:1") is True
        assert acquire_lease("job", "host-b:2", ttl_seconds=60) is True

    def test_expired_lease_can_be_taken_over(self, db_session):
        assert acquire_lease("job", "host-a:1", ttl_seconds=60) is True
        lease = db_session.get(JobLease, "job")
        lease.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        assert acquire_lease("job", "host-b:2", ttl_seconds=60) is True
        db_session.expire_all()
        assert db_session.get(JobLease, "job").holder == "host-b:2"


class TestSnapshotBatch:

    @pytest.fixture
    def scheduler(self, app):
        return SnapshotScheduler(app)

    def test_batch_snapshots_every_user(self, db_session, scheduler, user_a, user_b, make_item):
        make_item(user_a, name="A1")
        make_item(user_a, name="A2")
        make_item(user_b, name="B1")

        result = scheduler.run_for_all_users()
        assert result.skipped is False
        assert result.users == 2
        assert result.items == 3
        assert result.failed_user_ids == []
        assert db_session.query(ItemSnapshot).count() == 3

        # Lease is released afterwards
        assert db_session.get(JobLease, LEASE_NAME).holder is None

    def test_batch_skips_when_lease_held_elsewhere(self, db_session, scheduler, user_a, make_item):
        make_item(user_a, name="A1")
        assert acquire_lease(LEASE_NAME, "other-host:99", ttl_seconds=600) is True

        result = scheduler.run_for_all_users()
        assert result.skipped is True
        assert db_session.query(ItemSnapshot).count() == 0

    def test_batch_skips_while_running_in_process(self, db_session, scheduler, user_a, make_item):
        make_item(user_a, name="A1")
        scheduler._running.acquire()
        try:
            result = scheduler.run_for_all_users()
        finally:
            scheduler._running.release()
        assert result.skipped is True
        assert db_session.query(ItemSnapshot).count() == 0

    def test_one_user_failure_does_not_stop_batch(self, db_session, scheduler, user_a, user_b,
                                                  make_item, monkeypatch):
        make_item(user_a, name="A1")
        make_item(user_b, name="B1")
        original = history_service.create_user_snapshots

        def flaky(user_id, *args, **kwargs):
            if user_id == user_a.id:
                raise RuntimeError("boom")
            return original(user_id, *args, **kwargs)

        monkeypatch.setattr(history_service, "create_user_snapshots", flaky)

        result = scheduler.run_for_all_users()
        assert result.failed_user_ids == [user_a.id]
        assert result.users == 1
        assert db_session.query(ItemSnapshot).filter_by(user_id=user_b.id).count() == 1
        assert db_session.get(JobLease, LEASE_NAME).holder is None

    def test_cli_run(self, app, db_session, user_a, make_item):
        make_item(user_a, name="A1")
        runner = app.test_cli_runner()
        result = runner.invoke(args=["snapshots", "run"])
        assert "Snapshotted 1 items for 1 users" in result.output


class TestNextRunAt:

    def test_later_today(self):
        tz = ZoneInfo("Asia/Tbilisi")
        now = datetime(2026, 3, 1, 0, 30, tzinfo=tz)
        fire = next_run_at(now, hour=1, minute=0, tz_name="Asia/Tbilisi")
        assert fire == datetime(2026, 3, 1, 1, 0, tzinfo=tz)

    def test_rolls_to_tomorrow(self):
        tz = ZoneInfo("Asia/Tbilisi")
        now = datetime(2026, 3, 1, 1, 0, tzinfo=tz)
        fire = next_run_at(now, hour=1, minute=0, tz_name="Asia/Tbilisi")
        assert fire == datetime(2026, 3, 2, 1, 0, tzinfo=tz)

    def test_converts_from_utc(self):
        # 21:30 UTC is 01:30 next day in Tbilisi (UTC+4)
        now = datetime(2026, 3, 1, 21, 30, tzinfo=ZoneInfo("UTC"))
        fire = next_run_at(now, hour=1, minute=0, tz_name="Asia/Tbilisi")
        assert fire.astimezone(ZoneInfo("UTC")) == datetime(2026, 3, 2, 21, 0, tzinfo=ZoneInfo("UTC"))
