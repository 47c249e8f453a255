"""
RTI Tracker - Authentication Utilities
JWT tokens and role-based auth dependencies
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import ExpiredSignatureError, JWTError, jwt

from .config import Settings
from .models.domain import Role, User
from .runtime import Runtime, get_runtime

# Bearer token security
security = HTTPBearer()


def create_access_token(user: User, settings: Settings) -> str:
    """Create a JWT access token with role claim."""
    expire = datetime.now(timezone.utc) + timedelta(hours=settings.access_token_expire_hours)
    to_encode = {
        "sub": user.id,
        "role": user.role.value,
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """
    Decode and validate a JWT token.

    Returns None for an invalid token; an expired one raises ExpiredSignatureError.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise
    except JWTError:
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    runtime: Runtime = Depends(get_runtime),
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates JWT token and fetches user from the mirror.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_token(credentials.credentials, runtime.settings)
    except ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if payload is None or payload.get("sub") is None:
        raise credentials_exception

    user = runtime.store.find_user_by_id(payload["sub"])
    if user is None:
        raise credentials_exception

    return user


def require_role(*roles: Role):
    """
    Dependency factory restricting a route to the given roles.

    Usage:
        @router.post("/assign")
        async def assign(admin: User = Depends(require_role(Role.ADMIN))): ...
    """
    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            allowed = ", ".join(r.value for r in roles)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {allowed}",
            )
        return current_user

    return dependency


require_admin = require_role(Role.ADMIN)
require_officer = require_role(Role.OFFICER)
require_client = require_role(Role.CLIENT)


async def verify_internal_key(
    x_internal_key: str = Header(...),
    runtime: Runtime = Depends(get_runtime),
) -> bool:
    """Verify internal API key for scheduler endpoints."""
    if x_internal_key != runtime.settings.internal_api_key:
        raise HTTPException(status_code=403, detail="Invalid internal API key")
    return True
