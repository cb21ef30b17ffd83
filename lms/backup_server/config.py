"""
Configuration management for the LMS backup server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have defaults; APP_ENV defaults to production
    - Production deployments MUST set explicit values for the bucket and secrets
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep BACKUP_PREFIX stable: external tooling lists archives by it
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for backup archives.

    Attributes:
        bucket: S3 bucket name
        region: AWS region ("auto" for R2)
        endpoint_url: Custom endpoint URL (for R2 or MinIO)
        backup_prefix: Prefix under which archives are stored
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = "lms-uploads"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    backup_prefix: str = "backups/"
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("S3_BUCKET", "lms-uploads"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            backup_prefix=os.getenv("BACKUP_PREFIX", "backups/"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class DatabaseConfig:
    """LMS database configuration.

    Attributes:
        path: Path to the SQLite database file
        foreign_keys: Enforce foreign keys on every connection
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    path: str = "/var/lib/lms/lms.db"
    foreign_keys: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        """Load configuration from environment variables."""
        return cls(
            path=os.getenv("DATABASE_PATH", "/var/lib/lms/lms.db"),
            foreign_keys=os.getenv("DATABASE_FOREIGN_KEYS", "true").lower() == "true",
            busy_timeout_ms=int(os.getenv("DATABASE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class BackupConfig:
    """Backup job configuration.

    Attributes:
        retention_days: Archives older than this are deleted by cleanup
        environment: Environment label stamped into archive metadata
        format_version: Archive format version
        max_delete_batch: Store-imposed ceiling on keys per delete request
        scheduler_user_agent: User agent marker identifying the external scheduler
        schedule_description: Human-readable schedule reported by the status endpoint
    """

    retention_days: int = 14
    environment: str = "production"
    format_version: str = "1.0.0"
    max_delete_batch: int = 1000
    scheduler_user_agent: str = "vercel-cron"
    schedule_description: str = "Daily at 2:00 AM UTC"

    @classmethod
    def from_env(cls) -> BackupConfig:
        """Load configuration from environment variables."""
        return cls(
            retention_days=int(os.getenv("BACKUP_RETENTION_DAYS", "14")),
            environment=os.getenv("APP_ENV", "production"),
            format_version=os.getenv("BACKUP_FORMAT_VERSION", "1.0.0"),
            max_delete_batch=int(os.getenv("BACKUP_MAX_DELETE_BATCH", "1000")),
            scheduler_user_agent=os.getenv("BACKUP_SCHEDULER_USER_AGENT", "vercel-cron"),
            schedule_description=os.getenv("BACKUP_SCHEDULE", "Daily at 2:00 AM UTC"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServiceConfig:
    """Complete service configuration.

    Attributes:
        s3: S3 configuration
        database: Database configuration
        backup: Backup job configuration
        observability: Logging configuration
    """

    s3: S3Config = field(default_factory=S3Config)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServiceConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        config = cls(
            s3=S3Config.from_env(),
            database=DatabaseConfig.from_env(),
            backup=BackupConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.s3.bucket:
            raise ValueError("S3_BUCKET is required")
        if not self.s3.backup_prefix.endswith("/"):
            raise ValueError("BACKUP_PREFIX must end with '/'")
        if self.backup.retention_days < 1:
            raise ValueError("BACKUP_RETENTION_DAYS must be at least 1")
        if not 1 <= self.backup.max_delete_batch <= 1000:
            raise ValueError("BACKUP_MAX_DELETE_BATCH must be between 1 and 1000")

        if not os.path.exists(self.database.path):
            logger.warning(f"Database file does not exist: {self.database.path}")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Backup server configuration loaded",
            extra={
                "s3_bucket": self.s3.bucket,
                "s3_endpoint": self.s3.endpoint_url,
                "backup_prefix": self.s3.backup_prefix,
                "database_path": self.database.path,
                "retention_days": self.backup.retention_days,
                "environment": self.backup.environment,
                "log_level": self.observability.log_level,
            },
        )
