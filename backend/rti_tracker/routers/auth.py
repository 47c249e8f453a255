"""
RTI Tracker - Authentication Router
Handles user registration, login and session verification.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..auth import create_access_token, get_current_user
from ..models.domain import Role, User
from ..runtime import Runtime, get_runtime, get_users
from ..services.users import UserRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    external_identity_number: str = Field(..., min_length=1)
    role: Role = Role.CLIENT
    wallet_address: Optional[str] = None


class LoginRequest(BaseModel):
    user_id: str
    signin_key: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserResponse(BaseModel):
    id: str
    name: str
    role: Role
    wallet_address: str = ""

    @classmethod
    def from_record(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, role=user.role, wallet_address=user.wallet_address)


class RegisterResponse(BaseModel):
    """The sign-in key is returned once and never stored in plain form."""
    user: UserResponse
    signin_key: str


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, users: UserRegistry = Depends(get_users)):
    """
    Register a new client and issue their sign-in key.

    Officers are added by an admin (POST /admin/officers); admins are
    seeded with scripts/seed_admin.py.
    """
    if request.role != Role.CLIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only clients can self-register",
        )
    user, signin_key = users.register_user(
        request.name,
        request.external_identity_number,
        Role.CLIENT,
        request.wallet_address or "",
    )
    return RegisterResponse(user=UserResponse.from_record(user), signin_key=signin_key)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: LoginRequest,
    users: UserRegistry = Depends(get_users),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Authenticate with user id and sign-in key and return JWT token.
    """
    user = users.verify_credential(request.user_id, request.signin_key)
    access_token = create_access_token(user, runtime.settings)

    logger.info(f"User logged in: {user.id}")
    return TokenResponse(access_token=access_token)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """
    Get current authenticated user info.
    """
    return UserResponse.from_record(current_user)
