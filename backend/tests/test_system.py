# Overview: Pytest coverage for health/version endpoints and operator CLI commands.

from datetime import timedelta

from itemtracker.models import JobLease, SessionToken, User
from itemtracker.services import session_service
from itemtracker.services.concurrency import acquire_lease
from itemtracker.services.snapshot_scheduler import LEASE_NAME
from itemtracker.time_utils import utcnow


class TestHealth:

    def test_healthy(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["status"] == "healthy"
        assert resp.json["checks"]["snapshot_job"]["details"]["lease"] is None

    def test_stale_lease_is_degraded(self, client, db_session):
        acquire_lease(LEASE_NAME, "dead-host:1", ttl_seconds=60)
        lease = db_session.get(JobLease, LEASE_NAME)
        lease.expires_at = utcnow() - timedelta(minutes=5)
        db_session.commit()

        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "degraded"

    def test_version(self, client):
        resp = client.get("/version")
        assert resp.status_code == 200
        assert resp.json["api_version"] == "1.0.0"


class TestCli:

    def test_users_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create",
            "--username", "carol", "--email", "Carol@Example.com", "--password", "Password123",
        ])
        assert "PASS Created user 'carol'" in result.output

        user = db_session.query(User).filter_by(username="carol").one()
        assert user.email == "carol@example.com"
        assert user.is_verified is True

        listed = runner.invoke(args=["users", "list"])
        assert "carol" in listed.output

    def test_users_create_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "dave", "--email", "d@example.com", "--password", "short",
        ])
        assert result.output.startswith("FAIL")
        assert db_session.query(User).filter_by(username="dave").count() == 0

    def test_cleanup_sessions_removes_old_revoked(self, app, db_session, user_a):
        row, _ = session_service.create_session(user_a.id)
        row.is_revoked = True
        row.created_at = utcnow() - timedelta(days=40)
        db_session.commit()

        result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions"])
        assert "Removed 1 session tokens" in result.output
        assert db_session.query(SessionToken).count() == 0
