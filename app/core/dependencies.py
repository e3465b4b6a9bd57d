from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional
from app.core.database import get_db, get_redis
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import decode_token
from app.modules.users.models import User, UserRole, KYCStatus
from redis import asyncio as aioredis

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


async def authenticate_token(token: str, db: AsyncSession, redis: aioredis.Redis) -> User:
    """Resolve a bearer token to an active user, or raise AuthenticationError"""
    payload = decode_token(token)
    user_id = payload.get("sub")
    token_type = payload.get("type")

    if user_id is None or token_type != "access":
        raise AuthenticationError()

    # Check if token is blacklisted (logged out)
    is_blacklisted = await redis.get(f"blacklist:{token}")
    if is_blacklisted:
        raise AuthenticationError("Token has been revoked")

    try:
        user_pk = int(user_id)
    except (TypeError, ValueError):
        raise AuthenticationError()

    result = await db.execute(select(User).where(User.id == user_pk))
    user = result.scalar_one_or_none()

    if user is None:
        raise AuthenticationError("Invalid token. User not found.")

    return user


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis)
) -> User:
    """Get current authenticated user from JWT token"""
    return await authenticate_token(token, db, redis)


async def get_current_active_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """Ensure user account is active"""
    if not current_user.is_active:
        raise AuthenticationError("Account is deactivated. Please contact support.")
    return current_user


def require_role(*roles: UserRole):
    """Build a dependency that admits only the given roles"""
    async def checker(current_user: User = Depends(get_current_active_user)) -> User:
        if current_user.role not in roles:
            raise AuthorizationError(
                f"Access denied. Required role: {' or '.join(r.value for r in roles)}"
            )
        return current_user
    return checker


require_admin = require_role(UserRole.ADMIN)
require_borrower = require_role(UserRole.USER)


async def require_kyc_approved(
    current_user: User = Depends(get_current_active_user)
) -> User:
    """Ensure user has completed and passed KYC verification"""
    if current_user.role == UserRole.USER and current_user.kyc_status != KYCStatus.APPROVED:
        raise AuthorizationError(
            f"KYC verification required. Current status: {current_user.kyc_status.value}"
        )
    return current_user


async def get_optional_user(
    token: Optional[str] = Depends(optional_oauth2_scheme),
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis)
) -> Optional[User]:
    """Get current user if authenticated, otherwise return None"""
    if not token:
        return None

    try:
        user = await authenticate_token(token, db, redis)
    except AuthenticationError:
        return None
    return user if user.is_active else None
