"""
Unit tests for configuration loading.

Tests cover:
- Defaults
- Environment overrides
- Validation
- HTTP settings
"""

import pytest

from lms.backup_server.api.config import Settings
from lms.backup_server.config import BackupConfig, S3Config, ServiceConfig


class TestServiceConfig:
    """Tests for ServiceConfig."""

    def test_defaults(self):
        config = ServiceConfig()

        assert config.s3.bucket == "lms-uploads"
        assert config.s3.backup_prefix == "backups/"
        assert config.backup.retention_days == 14
        assert config.backup.max_delete_batch == 1000
        assert config.backup.format_version == "1.0.0"

    def test_from_env(self, monkeypatch, tmp_path):
        db_path = tmp_path / "lms.db"
        db_path.touch()
        monkeypatch.setenv("S3_BUCKET", "my-backups")
        monkeypatch.setenv("S3_ENDPOINT", "http://minio:9000")
        monkeypatch.setenv("BACKUP_RETENTION_DAYS", "30")
        monkeypatch.setenv("APP_ENV", "production")
        monkeypatch.setenv("DATABASE_PATH", str(db_path))
        monkeypatch.setenv("DATABASE_FOREIGN_KEYS", "false")

        config = ServiceConfig.from_env()

        assert config.s3.bucket == "my-backups"
        assert config.s3.endpoint_url == "http://minio:9000"
        assert config.backup.retention_days == 30
        assert config.backup.environment == "production"
        assert config.database.path == str(db_path)
        assert config.database.foreign_keys is False

    def test_region_falls_back_to_aws_region(self, monkeypatch):
        monkeypatch.delenv("S3_REGION", raising=False)
        monkeypatch.setenv("AWS_REGION", "eu-west-1")

        assert S3Config.from_env().region == "eu-west-1"

    def test_prefix_must_end_with_slash(self):
        config = ServiceConfig(s3=S3Config(backup_prefix="backups"))

        with pytest.raises(ValueError, match="BACKUP_PREFIX"):
            config.validate()

    def test_retention_must_be_positive(self):
        config = ServiceConfig(backup=BackupConfig(retention_days=0))

        with pytest.raises(ValueError, match="BACKUP_RETENTION_DAYS"):
            config.validate()

    def test_batch_ceiling(self):
        config = ServiceConfig(backup=BackupConfig(max_delete_batch=5000))

        with pytest.raises(ValueError, match="BACKUP_MAX_DELETE_BATCH"):
            config.validate()

    def test_bucket_required(self):
        config = ServiceConfig(s3=S3Config(bucket=""))

        with pytest.raises(ValueError, match="S3_BUCKET"):
            config.validate()


class TestSettings:
    """Tests for HTTP Settings."""

    def test_admin_secret_falls_back_to_cron_secret(self, monkeypatch):
        monkeypatch.delenv("ADMIN_API_SECRET", raising=False)
        monkeypatch.setenv("CRON_SECRET", "cron")

        assert Settings().admin_secret == "cron"

    def test_admin_secret_preferred(self, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "cron")
        monkeypatch.setenv("ADMIN_API_SECRET", "admin")

        assert Settings().admin_secret == "admin"

    def test_environment_defaults_to_production(self, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)

        assert not Settings().is_development
        assert BackupConfig.from_env().environment == "production"

    def test_development_flag(self):
        assert Settings(app_env="development").is_development
        assert not Settings(app_env="production").is_development
