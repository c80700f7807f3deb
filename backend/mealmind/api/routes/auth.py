from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from mealmind.api.dependencies import get_auth_service, get_current_user_id
from mealmind.core.database import get_db
from mealmind.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth", tags=["auth"])
# /me sits at the API root, outside the /auth prefix
me_router = APIRouter(tags=["auth"])


# Request/Response models
# Email and password are plain strings; AuthService validates them so bad
# input comes back as a 400 validation_error with a readable message
class RegisterRequest(BaseModel):
    email: str
    password: str


class LoginRequest(BaseModel):
    email: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class PublicUser(BaseModel):
    id: UUID
    email: str


class AuthResponse(BaseModel):
    access_token: str
    refresh_token: str
    user: PublicUser


def _auth_response(result: AuthResult) -> AuthResponse:
    # Same shape for register, login and refresh
    return AuthResponse(
        access_token=result.tokens.access_token,
        refresh_token=result.tokens.refresh_token,
        user=PublicUser(id=result.user.id, email=result.user.email),
    )


# Handlers below are plain functions: the session and argon2 calls block,
# and FastAPI runs sync handlers in its threadpool


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    payload: RegisterRequest,
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Register a new user and return a token pair"""
    return _auth_response(auth.register(db, payload.email, payload.password))


@router.post("/login", response_model=AuthResponse)
def login(
    payload: LoginRequest,
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Exchange email and password for a token pair"""
    return _auth_response(auth.login(db, payload.email, payload.password))


@router.post("/refresh", response_model=AuthResponse)
def refresh(
    payload: RefreshRequest,
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Exchange a refresh token for a new token pair"""
    return _auth_response(auth.refresh(db, payload.refresh_token))


@me_router.get("/me", response_model=PublicUser)
def get_me(
    user_id: UUID = Depends(get_current_user_id),
    auth: AuthService = Depends(get_auth_service),
    db: Session = Depends(get_db),
):
    """Get current user information"""
    # The guard only checked the token; this confirms the account still exists
    user = auth.get_me(db, user_id)
    return PublicUser(id=user.id, email=user.email)
