"""
Authentication Module
=====================

JWT-based authentication and authorization.

Features:
- JWT token validation
- Role-based access control
- FastAPI dependencies for route protection

Usage:
    from shared.auth import get_current_user, require_admin

    @router.get("/protected")
    async def protected(user: User = Depends(get_current_user)):
        return {"user": user.id}
"""

from shared.auth.dependencies import (
    User,
    get_current_user,
    oauth2_scheme,
    require_admin,
    require_roles,
    require_service,
)
from shared.auth.jwt import TokenData, create_access_token, decode_token


__all__ = [
    # JWT
    "create_access_token",
    "decode_token",
    "TokenData",
    # Dependencies
    "User",
    "get_current_user",
    "require_roles",
    "require_admin",
    "require_service",
    "oauth2_scheme",
]
