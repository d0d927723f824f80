"""
Authentication dependencies for FastAPI routes.

Callers authenticate with ``Authorization: Bearer <jwt>``.  Tokens are issued
by ``POST /api/auth/signup`` and ``POST /api/auth/login`` and carry the user id
in the ``sub`` claim.
"""
from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from lawmint.config import settings
from lawmint.database import get_db
from lawmint.models.database_models import User
from lawmint.services.permissions import has_permission
from lawmint.utils.helpers import utcnow

logger = logging.getLogger(__name__)

# Password hashing
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

# Missing credentials are reported as 401 below rather than HTTPBearer's default
security = HTTPBearer(auto_error=False)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Generate password hash."""
    return pwd_context.hash(password)


def create_access_token(user_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token for *user_id*."""
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": user_id, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    """Return the user id carried by *token*, or None when it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Token verification failed: {e}")
        return None
    if payload.get("type") != "access":
        return None
    return payload.get("sub")


async def get_user_from_token(token: str, db: AsyncSession) -> Optional[User]:
    """Resolve a raw token to a user; used by the WebSocket endpoint too."""
    user_id = decode_access_token(token)
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Get the current authenticated user from the bearer token. Raises 401."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception

    user = await get_user_from_token(credentials.credentials, db)
    if user is None:
        raise credentials_exception
    return user


async def get_firm_member(current_user: User = Depends(get_current_user)) -> User:
    """Current user, who must already belong to a firm. Raises 403."""
    if not current_user.firm_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User is not a member of any firm",
        )
    return current_user


def require_permission(permission: str):
    """
    Build a dependency that admits firm members whose role grants *permission*.

    Example:
        @router.post("/upload")
        async def upload(user: User = Depends(require_permission("upload_templates"))):
            ...
    """

    async def _checker(current_user: User = Depends(get_firm_member)) -> User:
        if not has_permission(current_user.role, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role '{current_user.role}' is not allowed to {permission.replace('_', ' ')}",
            )
        return current_user

    return _checker


async def get_firm_admin(current_user: User = Depends(get_firm_member)) -> User:
    """Current user, who must be an admin of their firm."""
    if not has_permission(current_user.role, "manage_firm"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only firm admins can perform this action",
        )
    return current_user
