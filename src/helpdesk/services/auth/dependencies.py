"""Authentication dependencies for FastAPI."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from helpdesk.services.auth.jwt_service import JWTService, get_jwt_service
from helpdesk.services.helpdesk.schemas import Actor, ActorRole

logger = logging.getLogger(__name__)

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticatedUser:
    """Represents an authenticated employee."""

    def __init__(
        self,
        user_id: str,
        name: str = "",
        role: str = "EMPLOYEE",
        department: str | None = None,
        approval_level: int | None = None,
        manager_id: str | None = None,
    ):
        """Initialize authenticated user.

        Args:
            user_id: Employee ID (subject from token)
            name: Display name
            role: Role claim
            department: Department a specialist serves
            approval_level: Approval level a manager holds
            manager_id: Reporting manager
        """
        self.user_id = user_id
        self.name = name
        self.role = role
        self.department = department
        self.approval_level = approval_level
        self.manager_id = manager_id

    @property
    def is_admin(self) -> bool:
        """Check if user is admin."""
        return self.role == ActorRole.ADMIN.value

    def to_actor(self) -> Actor:
        """Actor used by the helpdesk service."""
        return Actor(
            id=self.user_id,
            name=self.name,
            role=ActorRole(self.role),
            department=self.department,
            approval_level=self.approval_level,
        )


async def get_current_user(
    credentials: Annotated[
        HTTPAuthorizationCredentials | None, Depends(bearer_scheme)
    ],
    jwt_service: Annotated[JWTService, Depends(get_jwt_service)],
) -> AuthenticatedUser:
    """Get current authenticated user from JWT token.

    Args:
        credentials: Bearer token from request
        jwt_service: JWT service for token verification

    Returns:
        AuthenticatedUser if token is valid

    Raises:
        HTTPException: If token is missing or invalid
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = jwt_service.verify_access_token(credentials.credentials)

    if not payload or payload.role not in ActorRole.__members__ or (
        payload.role == ActorRole.SYSTEM.value
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthenticatedUser(
        user_id=payload.sub,
        name=payload.name,
        role=payload.role,
        department=payload.department,
        approval_level=payload.approval_level,
        manager_id=payload.manager_id,
    )


async def require_admin(
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
) -> AuthenticatedUser:
    """Dependency requiring admin role.

    Args:
        user: Current authenticated user

    Returns:
        User if admin

    Raises:
        HTTPException: If user is not admin
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# Type aliases for dependency injection
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
AdminUser = Annotated[AuthenticatedUser, Depends(require_admin)]
