"""Authentication services module."""

from helpdesk.services.auth.dependencies import (
    AdminUser,
    AuthenticatedUser,
    CurrentUser,
    get_current_user,
    require_admin,
)
from helpdesk.services.auth.jwt_service import (
    JWTService,
    TokenPayload,
    get_jwt_service,
)

__all__ = [
    # JWT
    "JWTService",
    "TokenPayload",
    "get_jwt_service",
    # Dependencies
    "AuthenticatedUser",
    "get_current_user",
    "require_admin",
    # Type aliases
    "CurrentUser",
    "AdminUser",
]
