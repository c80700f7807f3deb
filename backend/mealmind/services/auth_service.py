import logging
import re
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from mealmind.core.exceptions import AuthenticationError, ConflictError, ValidationError
from mealmind.core.security import PasswordHasher, TokenPair, TokenService
from mealmind.models.user import User
from mealmind.repositories.user_repository import EMAIL_TAKEN_MESSAGE, UserRepository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MIN_PASSWORD_LENGTH = 8
# Stays under passlib's 4096-byte secret limit even for 4-byte UTF-8 characters
MAX_PASSWORD_LENGTH = 1024

INVALID_CREDENTIALS_MESSAGE = "invalid credentials"
USER_NOT_FOUND_MESSAGE = "user not found"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email) is not None


@dataclass(frozen=True)
class AuthResult:
    user: User
    tokens: TokenPair


class AuthService:
    """
    Registration, login and token refresh.

    Methods are synchronous: they hit the database and run argon2, so the
    routes calling them are plain functions executed in FastAPI's threadpool.
    """

    def __init__(self, hasher: PasswordHasher, tokens: TokenService):
        self.hasher = hasher
        self.tokens = tokens

    def _validated_email(self, email: str) -> str:
        # Emails are compared and stored trimmed and lowercased
        normalized = normalize_email(email)
        if not is_valid_email(normalized):
            raise ValidationError("invalid email")
        return normalized

    def register(self, db: Session, email: str, password: str) -> AuthResult:
        email = self._validated_email(email)
        if len(password) < MIN_PASSWORD_LENGTH:
            raise ValidationError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")
        if len(password) > MAX_PASSWORD_LENGTH:
            raise ValidationError(f"password must be at most {MAX_PASSWORD_LENGTH} characters")

        # Fast path for the common duplicate; the unique index is the real guard
        users = UserRepository(db)
        if users.find_by_email(email) is not None:
            raise ConflictError(EMAIL_TAKEN_MESSAGE)

        password_hash = self.hasher.hash(password)
        # A concurrent registration can still win the insert; create() raises ConflictError then
        user = users.create(email, password_hash)

        logger.info("User registered user_id=%s", user.id)
        return AuthResult(user=user, tokens=self.tokens.issue_pair(user.id))

    def login(self, db: Session, email: str, password: str) -> AuthResult:
        email = self._validated_email(email)

        # Unknown email and wrong password share one message
        user = UserRepository(db).find_by_email(email)
        if user is None:
            logger.warning("Login for unknown email")
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if not self.hasher.verify(password, user.password_hash):
            logger.warning("Login with invalid password user_id=%s", user.id)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        logger.info("User logged in user_id=%s", user.id)
        return AuthResult(user=user, tokens=self.tokens.issue_pair(user.id))

    def refresh(self, db: Session, refresh_token: str) -> AuthResult:
        """
        Exchange a refresh token for a new pair.

        The presented token is not revoked; tokens are stateless and it stays
        valid until it expires.
        """
        claims = self.tokens.verify_refresh(refresh_token)
        # The account may have been removed since the token was issued
        user = UserRepository(db).get(claims.sub)
        if user is None:
            raise AuthenticationError(USER_NOT_FOUND_MESSAGE)
        return AuthResult(user=user, tokens=self.tokens.issue_pair(user.id))

    def get_me(self, db: Session, user_id: UUID) -> User:
        # The token may outlive the account, so existence is checked here
        user = UserRepository(db).get(user_id)
        if user is None:
            raise AuthenticationError(USER_NOT_FOUND_MESSAGE)
        return user
