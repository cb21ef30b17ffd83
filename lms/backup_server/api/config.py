"""
Configuration for the backup HTTP endpoints.

Uses pydantic-settings for environment variable loading.
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """HTTP layer configuration loaded from environment."""

    # Shared secrets
    cron_secret: str | None = Field(default=None, description="Bearer secret for the scheduled trigger")
    admin_api_secret: str | None = Field(
        default=None, description="Bearer secret for the admin listing (falls back to cron_secret)"
    )

    # Environment label; only an explicit "development" disables authorization
    app_env: str = Field(default="production", description="Deployment environment")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")

    model_config = {"env_prefix": ""}

    @property
    def admin_secret(self) -> str | None:
        """Secret guarding the admin listing."""
        return self.admin_api_secret or self.cron_secret

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"
