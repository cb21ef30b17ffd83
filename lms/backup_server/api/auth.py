"""
Shared-secret authorization for backup triggers.

Invariants:
    - A configured secret must be presented as "Bearer <secret>"
    - Outside development, a missing secret rejects every request
    - Development mode accepts any request
    - The user agent only labels the trigger; it never authorizes
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from typing import Optional

from ..errors import AuthorizationError

SCHEDULER = "scheduler"
MANUAL_API = "manual-api"
DEVELOPMENT = "development"
DEVELOPMENT_NO_SECRET = "development-no-secret"


@dataclass(frozen=True)
class AuthResult:
    triggered_by: str


def verify_authorization(
    header: Optional[str],
    secret: Optional[str],
    environment: str,
    user_agent: Optional[str] = None,
    scheduler_marker: str = "vercel-cron",
) -> AuthResult:
    """Check a bearer header against the shared secret.

    Args:
        header: Authorization header value
        secret: Configured shared secret
        environment: Deployment environment label
        user_agent: Caller user agent
        scheduler_marker: Substring identifying the external scheduler

    Returns:
        AuthResult naming who triggered the request

    Raises:
        AuthorizationError: If the request is not authorized
    """
    development = environment == "development"

    if not secret:
        if development:
            return AuthResult(triggered_by=DEVELOPMENT_NO_SECRET)
        raise AuthorizationError("Backup secret is not configured")

    if header is not None and hmac.compare_digest(header.encode(), f"Bearer {secret}".encode()):
        if scheduler_marker and scheduler_marker in (user_agent or ""):
            return AuthResult(triggered_by=SCHEDULER)
        return AuthResult(triggered_by=MANUAL_API)

    if development:
        return AuthResult(triggered_by=DEVELOPMENT)

    raise AuthorizationError("Invalid or missing authorization")
