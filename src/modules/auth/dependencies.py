"""
Auth Module - FastAPI Dependencies

Bearer JWT authentication. The token's `sub` claim carries the user ID;
the user is loaded from the database on every request.
"""
import uuid
from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import get_db
from src.core.exceptions import ForbiddenError, UnauthorizedError
from src.core.logging import bind_context, get_logger
from src.core.security import verify_token
from src.modules.auth.models import User
from src.modules.auth.service import AuthService

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


async def get_auth_service(db: Annotated[AsyncSession, Depends(get_db)]) -> AuthService:
    """Get AuthService instance with injected database session."""
    return AuthService(db)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    auth_service: Annotated[AuthService, Depends(get_auth_service)],
) -> User:
    """
    Get current authenticated user from the bearer token.

    Raises:
        UnauthorizedError: missing/invalid token, unknown or disabled user
    """
    if not credentials:
        raise UnauthorizedError("Authentication required")

    payload = verify_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise UnauthorizedError("Invalid or expired token")

    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        raise UnauthorizedError("Invalid token subject")

    user = await auth_service.get_user_by_id(user_id)
    if not user:
        logger.warning("User not found for token", user_id=str(user_id))
        raise UnauthorizedError("User not found")

    if not user.is_active:
        raise UnauthorizedError("User account is disabled")

    bind_context(user_id=str(user.id))
    return user


async def get_current_superuser(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current superuser."""
    if not current_user.is_superuser:
        raise ForbiddenError("Superuser access required")
    return current_user


# Type aliases for dependency injection
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentSuperuser = Annotated[User, Depends(get_current_superuser)]
