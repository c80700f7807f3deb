import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext
from passlib.exc import PasswordSizeError

from mealmind.core.config import Settings, settings
from mealmind.core.exceptions import (
    HashingError,
    InvalidTokenError,
    MalformedHashError,
    ValidationError,
    WrongTokenKindError,
)

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


# -----------------------------------------------------------------------------
# Password hashing
# -----------------------------------------------------------------------------

class PasswordHasher:
    """Hash and verify passwords with argon2 (memory-hard, salted per call)."""

    def __init__(self, time_cost: int = 3, memory_cost_kib: int = 64 * 1024, parallelism: int = 4):
        self._context = CryptContext(
            schemes=["argon2"],
            deprecated="auto",
            argon2__time_cost=time_cost,
            argon2__memory_cost=memory_cost_kib,
            argon2__parallelism=parallelism,
        )

    @classmethod
    def from_settings(cls, config: Settings) -> "PasswordHasher":
        return cls(
            time_cost=config.ARGON2_TIME_COST,
            memory_cost_kib=config.ARGON2_MEMORY_COST_KIB,
            parallelism=config.ARGON2_PARALLELISM,
        )

    def hash(self, plaintext: str) -> str:
        """Return an encoded argon2 hash; a fresh salt is generated on every call."""
        try:
            return self._context.hash(plaintext)
        except PasswordSizeError as e:
            # Oversized input is a client error, not a hashing failure
            raise ValidationError("password is too long") from e
        except (ValueError, TypeError) as e:
            logger.error("argon2 hash failed: %s", type(e).__name__)
            raise HashingError() from e

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """
        Check plaintext against a stored hash.

        Returns False on a digest mismatch, including a plaintext too long to
        ever have been hashed. Raises MalformedHashError when the stored value
        is not an encoded argon2 hash.
        """
        # Reject anything that does not carry an argon2 prefix before verifying
        if not isinstance(password_hash, str) or not self._context.identify(password_hash):
            raise MalformedHashError()
        try:
            return self._context.verify(plaintext, password_hash)
        except PasswordSizeError:
            # PasswordSizeError is a ValueError; it must not read as a bad stored hash
            return False
        except (ValueError, TypeError) as e:
            raise MalformedHashError() from e


# -----------------------------------------------------------------------------
# JWT tokens
# -----------------------------------------------------------------------------

class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    sub: UUID
    iat: int
    exp: int
    iss: str
    aud: str
    kind: TokenKind


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """
    Signs and verifies HS256 tokens scoped to one issuer and audience.

    Verification is stateless. The `kind` claim keeps refresh tokens from
    being accepted as access credentials and the other way round.
    """

    def __init__(
        self,
        secret: str,
        issuer: str,
        audience: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        leeway_seconds: int = 60,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if not secret:
            raise ValueError("JWT secret must not be empty")
        if access_ttl <= timedelta(0) or refresh_ttl <= timedelta(0):
            raise ValueError("token TTLs must be positive")
        self._secret = secret
        self.issuer = issuer
        self.audience = audience
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.leeway_seconds = leeway_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, config: Settings) -> "TokenService":
        return cls(
            secret=config.JWT_SECRET,
            issuer=config.JWT_ISSUER,
            audience=config.JWT_AUDIENCE,
            access_ttl=timedelta(minutes=config.JWT_TTL_MINUTES),
            refresh_ttl=timedelta(minutes=config.JWT_REFRESH_TTL_MINUTES),
            leeway_seconds=config.JWT_LEEWAY_SECONDS,
        )

    def sign(self, user_id: UUID, kind: TokenKind) -> str:
        # iat and exp are whole epoch seconds
        now = self._clock()
        ttl = self.access_ttl if kind is TokenKind.ACCESS else self.refresh_ttl
        claims = {
            "sub": str(user_id),
            "iat": int(now.timestamp()),
            "exp": int((now + ttl).timestamp()),
            "iss": self.issuer,
            "aud": self.audience,
            "kind": kind.value,
        }
        token = jwt.encode(claims, self._secret, algorithm=JWT_ALGORITHM)
        logger.debug("jwt signed user_id=%s kind=%s", user_id, kind.value)
        return token

    def sign_access(self, user_id: UUID) -> str:
        return self.sign(user_id, TokenKind.ACCESS)

    def sign_refresh(self, user_id: UUID) -> str:
        return self.sign(user_id, TokenKind.REFRESH)

    def issue_pair(self, user_id: UUID) -> TokenPair:
        return TokenPair(
            access_token=self.sign_access(user_id),
            refresh_token=self.sign_refresh(user_id),
        )

    def verify(self, token: str) -> TokenClaims:
        """
        Decode a token and check signature, issuer, audience and expiry.

        Every failure raises the same InvalidTokenError so callers cannot tell
        which check rejected the token.
        """
        # jose checks signature, exp (with leeway), aud and iss in one call
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                audience=self.audience,
                issuer=self.issuer,
                options={"leeway": self.leeway_seconds},
            )
            claims = TokenClaims(
                sub=UUID(payload["sub"]),
                iat=int(payload["iat"]),
                exp=int(payload["exp"]),
                iss=payload["iss"],
                aud=payload["aud"],
                kind=TokenKind(payload["kind"]),
            )
        except (JWTError, KeyError, ValueError, TypeError) as e:
            logger.debug("jwt rejected: %s", type(e).__name__)
            raise InvalidTokenError() from e

        logger.debug("jwt verified user_id=%s kind=%s", claims.sub, claims.kind.value)
        return claims

    def _verify_kind(self, token: str, kind: TokenKind) -> TokenClaims:
        claims = self.verify(token)
        if claims.kind is not kind:
            raise WrongTokenKindError(f"{kind.value} token required")
        return claims

    def verify_access(self, token: str) -> TokenClaims:
        return self._verify_kind(token, TokenKind.ACCESS)

    def verify_refresh(self, token: str) -> TokenClaims:
        return self._verify_kind(token, TokenKind.REFRESH)


password_hasher = PasswordHasher.from_settings(settings)
token_service = TokenService.from_settings(settings)
