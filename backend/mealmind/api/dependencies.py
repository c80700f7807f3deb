import logging
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, Request

from mealmind.core.exceptions import AuthenticationError, InvalidTokenError
from mealmind.core.security import (
    PasswordHasher,
    TokenKind,
    TokenService,
    password_hasher,
    token_service,
)
from mealmind.services.auth_service import AuthService
from mealmind.services.meal_workflow import MealCreationWorkflow
from mealmind.storage.object_storage import ObjectStorageClient

logger = logging.getLogger(__name__)

BEARER_SCHEME = "bearer"


# Providers below are overridable through app.dependency_overrides in tests
def get_token_service() -> TokenService:
    return token_service


def get_password_hasher() -> PasswordHasher:
    return password_hasher


def get_storage(request: Request) -> ObjectStorageClient:
    """Storage client built once at startup (see main.lifespan) and shared by all requests"""
    return request.app.state.storage


def get_auth_service(
    hasher: PasswordHasher = Depends(get_password_hasher),
    tokens: TokenService = Depends(get_token_service),
) -> AuthService:
    return AuthService(hasher, tokens)


def get_meal_workflow(storage: ObjectStorageClient = Depends(get_storage)) -> MealCreationWorkflow:
    return MealCreationWorkflow(storage)


def authenticate(authorization: Optional[str], tokens: TokenService) -> UUID:
    """
    Turn a raw Authorization header into the authenticated user id.

    Accepts "Bearer <token>" with any casing of the scheme and surrounding
    whitespace. Only access tokens are accepted. The user row is not looked up.
    """
    # Absent and blank headers are reported the same way
    if authorization is None or not authorization.strip():
        raise AuthenticationError("missing Authorization header")

    # Split "<scheme> <token>" on the first space; the token may carry extra padding
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != BEARER_SCHEME or not token:
        raise AuthenticationError("invalid auth scheme")

    # Signature, issuer, audience and expiry failures all collapse to one message
    try:
        claims = tokens.verify(token)
    except InvalidTokenError:
        logger.warning("Token verification failed")
        raise AuthenticationError("invalid or expired token")

    # Refresh tokens only work at /auth/refresh
    if claims.kind is not TokenKind.ACCESS:
        raise AuthenticationError("access token required")

    return claims.sub


async def get_current_user_id(
    authorization: Optional[str] = Header(default=None),
    tokens: TokenService = Depends(get_token_service),
) -> UUID:
    """FastAPI dependency guarding protected routes"""
    return authenticate(authorization, tokens)
