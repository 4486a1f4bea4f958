"""
FastAPI Authentication Dependencies
===================================

Dependency injection for route protection.

Version: 0.1.0
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel, Field

from shared.auth.jwt import decode_token
from shared.logging import get_logger


logger = get_logger(__name__)

# OAuth2 scheme for token extraction from Authorization header
oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl="/auth/token",
    auto_error=False,
)


class User(BaseModel):
    """Authenticated user model for dependency injection."""

    id: str = Field(..., description="User ID")
    email: str | None = Field(default=None, description="User email")
    roles: list[str] = Field(default_factory=list, description="User roles")


async def get_current_user(
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> User:
    """
    Extract and validate user from JWT token.

    Raises:
        HTTPException: 401 if token is missing or invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token is None:
        logger.warning("auth_token_missing")
        raise credentials_exception

    token_data = decode_token(token, verify_type="access")

    if token_data is None:
        logger.warning("auth_token_invalid")
        raise credentials_exception

    return User(
        id=token_data.sub,
        email=token_data.email,
        roles=token_data.roles,
    )


def require_roles(required_roles: list[str]) -> Callable[..., User]:
    """
    Create a dependency that requires any of the given roles.

    Usage:
        @router.post("/aging-check")
        async def run(user: User = Depends(require_roles(["admin"]))):
            ...
    """

    async def role_checker(
        current_user: Annotated[User, Depends(get_current_user)],
    ) -> User:
        if not set(required_roles).intersection(current_user.roles):
            logger.warning(
                "insufficient_roles",
                user_id=current_user.id,
                user_roles=current_user.roles,
                required_roles=required_roles,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )

        return current_user

    return role_checker


# Common role dependencies
require_admin = require_roles(["admin"])
require_service = require_roles(["service", "admin"])
