"""
HTTP endpoints for the backup server.
"""

from .app import create_app
from .auth import AuthResult, verify_authorization
from .config import Settings

__all__ = ["AuthResult", "Settings", "create_app", "verify_authorization"]
