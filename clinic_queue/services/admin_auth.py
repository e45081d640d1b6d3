"""
Request-scoped admin context.

Admin commands receive an explicit AdminContext built from the
X-Admin-Token header of the request instead of relying on session state.
"""

import hashlib
import secrets
from dataclasses import dataclass

from clinic_queue.config.config import Settings, get_settings
from clinic_queue.services.errors import AdminAuthenticationError

ANONYMOUS_ADMIN = "anonymous"


@dataclass(frozen=True)
class AdminContext:
    """Identity of the admin issuing a command."""

    admin_id: str
    authenticated: bool


def authenticate_admin(token: str | None, settings: Settings | None = None) -> AdminContext:
    """
    Validate an admin token for one request.

    When no admin token is configured every request is let through as an
    unauthenticated admin, which is only meant for development.

    Raises:
        AdminAuthenticationError: a token is configured and `token` does not match.
    """
    settings = settings or get_settings()
    if not settings.admin_auth_enabled:
        return AdminContext(admin_id=ANONYMOUS_ADMIN, authenticated=False)

    if not token or not secrets.compare_digest(token.encode(), settings.admin_token.encode()):
        raise AdminAuthenticationError("Missing or invalid admin token")

    # Stable, non-reversible id for audit logs
    admin_id = hashlib.sha256(token.encode()).hexdigest()[:12]
    return AdminContext(admin_id=admin_id, authenticated=True)
