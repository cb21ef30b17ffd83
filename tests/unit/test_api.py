"""
Unit tests for the HTTP endpoints.

Tests cover:
- Shared-secret authorization
- Backup trigger responses and audit records
- Status and admin listing
"""

import logging
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from lms.backup_server.api.app import create_app
from lms.backup_server.api.auth import verify_authorization
from lms.backup_server.api.config import Settings
from lms.backup_server.config import BackupConfig, S3Config, ServiceConfig
from lms.backup_server.db.memory import InMemoryDatabase
from lms.backup_server.errors import AuthorizationError
from lms.backup_server.jobs.service import BackupService
from lms.backup_server.schema.registry import TableRegistry
from lms.backup_server.schema.types import table
from lms.backup_server.storage.memory import InMemoryBlobStore

SECRET = "s3cr3t"
AUTH = {"Authorization": f"Bearer {SECRET}"}


class TestVerifyAuthorization:
    """Tests for verify_authorization."""

    def test_valid_token(self):
        result = verify_authorization(f"Bearer {SECRET}", SECRET, "production")

        assert result.triggered_by == "manual-api"

    def test_scheduler_user_agent(self):
        result = verify_authorization(f"Bearer {SECRET}", SECRET, "production", user_agent="vercel-cron/1.0")

        assert result.triggered_by == "scheduler"

    def test_wrong_token_rejected(self):
        with pytest.raises(AuthorizationError):
            verify_authorization("Bearer nope", SECRET, "production")

    def test_missing_header_rejected(self):
        with pytest.raises(AuthorizationError):
            verify_authorization(None, SECRET, "production")

    def test_missing_secret_rejected_outside_development(self):
        with pytest.raises(AuthorizationError, match="not configured"):
            verify_authorization(f"Bearer {SECRET}", None, "production")

    def test_development_is_permissive(self):
        assert verify_authorization(None, None, "development").triggered_by == "development-no-secret"
        assert verify_authorization("Bearer nope", SECRET, "development").triggered_by == "development"

    def test_user_agent_alone_never_authorizes(self):
        with pytest.raises(AuthorizationError):
            verify_authorization(None, SECRET, "production", user_agent="vercel-cron/1.0")


@pytest.fixture
def database():
    return InMemoryDatabase({"courses": [{"id": 1}, {"id": 2}]})


@pytest.fixture
def store():
    return InMemoryBlobStore()


@pytest.fixture
def service(database, store):
    registry = TableRegistry()
    registry.register(table("courses"))
    registry.freeze()
    config = ServiceConfig(s3=S3Config(bucket="test"), backup=BackupConfig(environment="test"))
    return BackupService(database, registry, store, config)


@pytest.fixture
def client(service):
    settings = Settings(cron_secret=SECRET, admin_api_secret=None, app_env="production")
    app = create_app(settings=settings, service=service)
    with TestClient(app) as test_client:
        yield test_client


def audit_actions(caplog):
    return [r.audit_action for r in caplog.records if r.name == "lms.backup_server.audit"]


class TestBackupTrigger:
    """Tests for POST /api/cron/db-backup."""

    def test_unauthorized(self, client, store, caplog):
        with caplog.at_level(logging.INFO):
            response = client.post("/api/cron/db-backup", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert store.objects == {}
        assert audit_actions(caplog) == ["SYSTEM_WARNING"]

    def test_backup_succeeds(self, client, store, caplog):
        with caplog.at_level(logging.INFO):
            response = client.post("/api/cron/db-backup", headers={**AUTH, "User-Agent": "vercel-cron/1.0"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["triggered_by"] == "scheduler"
        assert body["backup"]["total_records"] == 2
        assert body["backup"]["key"] in store.objects
        assert body["stats"]["total_backups"] == 1
        assert audit_actions(caplog) == ["BACKUP_CREATED"]

    def test_backup_failure_returns_500(self, client, database, caplog):
        database.fail_reads.add("courses")

        with caplog.at_level(logging.INFO):
            response = client.post("/api/cron/db-backup", headers=AUTH)

        assert response.status_code == 500
        assert response.json()["backup"]["success"] is False
        assert "BACKUP_FAILED" in audit_actions(caplog)

    def test_cleanup_is_audited(self, client, store, caplog):
        store.add_object("backups/2020-01-01/old_full.json.gz", b"x", datetime(2020, 1, 1, tzinfo=timezone.utc))

        with caplog.at_level(logging.INFO):
            response = client.post("/api/cron/db-backup", headers=AUTH)

        assert response.json()["cleanup"]["deleted_count"] == 1
        assert audit_actions(caplog) == ["BACKUP_CREATED", "BACKUP_CLEANUP"]

    def test_audit_records_client(self, client, caplog):
        with caplog.at_level(logging.INFO):
            client.post(
                "/api/cron/db-backup",
                headers={**AUTH, "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "curl/8"},
            )

        record = next(r for r in caplog.records if r.name == "lms.backup_server.audit")
        assert record.ip_address == "203.0.113.7"
        assert record.user_agent == "curl/8"


class TestBackupStatus:
    """Tests for GET /api/cron/db-backup."""

    def test_unauthorized(self, client):
        assert client.get("/api/cron/db-backup").status_code == 401

    def test_no_backups_is_warning(self, client):
        body = client.get("/api/cron/db-backup", headers=AUTH).json()

        assert body["health"]["status"] == "WARNING"
        assert body["stats"]["days_since_last_backup"] is None
        assert body["config"] == {"retention_days": 14, "schedule": "Daily at 2:00 AM UTC"}

    def test_recent_backup_is_healthy(self, client, store):
        store.add_object("backups/x/a_full.json.gz", b"x", datetime.now(timezone.utc) - timedelta(hours=2))

        body = client.get("/api/cron/db-backup", headers=AUTH).json()

        assert body["health"]["status"] == "HEALTHY"
        assert body["stats"]["days_since_last_backup"] == 0


class TestAdminBackups:
    """Tests for GET /api/admin/backups."""

    def test_lists_archives(self, client, store):
        now = datetime.now(timezone.utc)
        store.add_object("backups/2024-06-01/a_full.json.gz", b"x" * 10, now - timedelta(days=3))
        store.add_object("backups/2024-06-03/b_full.json.gz", b"x" * 20, now - timedelta(days=1))
        store.add_object("backups/2024-06-03/c_full.json.gz", b"x" * 30, now - timedelta(hours=1))

        response = client.get("/api/admin/backups", headers=AUTH)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 3
        assert [b["key"] for b in body["backups"]] == [
            "backups/2024-06-03/c_full.json.gz",
            "backups/2024-06-03/b_full.json.gz",
            "backups/2024-06-01/a_full.json.gz",
        ]
        assert body["backups"][2]["age_in_days"] == 3
        assert sorted(body["by_date"]) == ["2024-06-01", "2024-06-03"]
        assert len(body["by_date"]["2024-06-03"]) == 2
        assert body["restore_instructions"]["steps"]

    def test_unauthorized(self, client, caplog):
        with caplog.at_level(logging.INFO):
            response = client.get("/api/admin/backups", headers={"Authorization": "Bearer wrong"})

        assert response.status_code == 401
        assert audit_actions(caplog) == ["SYSTEM_WARNING"]

    def test_admin_secret_takes_precedence(self, service):
        settings = Settings(cron_secret=SECRET, admin_api_secret="admin", app_env="production")
        with TestClient(create_app(settings=settings, service=service)) as client:
            assert client.get("/api/admin/backups", headers=AUTH).status_code == 401
            assert client.get("/api/admin/backups", headers={"Authorization": "Bearer admin"}).status_code == 200


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


class TestDefaultEnvironment:
    """Authorization with nothing configured in the environment."""

    @pytest.fixture
    def bare_env(self, monkeypatch):
        for name in ("APP_ENV", "CRON_SECRET", "ADMIN_API_SECRET"):
            monkeypatch.delenv(name, raising=False)

    def test_trigger_rejected(self, bare_env, service, store):
        with TestClient(create_app(service=service)) as client:
            response = client.post("/api/cron/db-backup")

        assert response.status_code == 401
        assert store.objects == {}

    def test_admin_listing_rejected(self, bare_env, service):
        with TestClient(create_app(service=service)) as client:
            assert client.get("/api/admin/backups").status_code == 401

    def test_explicit_development_is_permissive(self, bare_env, monkeypatch, service):
        monkeypatch.setenv("APP_ENV", "development")

        with TestClient(create_app(service=service)) as client:
            response = client.post("/api/cron/db-backup")

        assert response.status_code == 200
        assert response.json()["triggered_by"] == "development-no-secret"
