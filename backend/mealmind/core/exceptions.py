from typing import Optional


class AppError(Exception):
    """Base class for errors that map onto an HTTP response.

    Attributes:
        message: human-readable message, safe to show for 4xx errors
        status_code: HTTP status code the API layer responds with
        code: stable machine-readable error code
    """

    status_code = 500
    code = "internal_error"
    default_message = "internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"
    default_message = "invalid input"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"
    default_message = "conflict"


class AuthenticationError(AppError):
    status_code = 401
    code = "unauthorized"
    default_message = "unauthorized"


class InvalidTokenError(AuthenticationError):
    """Signature, issuer, audience, expiry or structure check failed."""

    default_message = "invalid or expired token"


class WrongTokenKindError(AuthenticationError):
    """Token is valid but of the wrong kind (access vs refresh)."""

    default_message = "wrong token kind"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"
    default_message = "not found"


class StorageError(AppError):
    code = "storage_error"
    default_message = "object storage failure"


class PersistenceError(AppError):
    code = "persistence_error"
    default_message = "database failure"


class HashingError(AppError):
    code = "hashing_error"
    default_message = "password hashing failure"


class MalformedHashError(HashingError):
    default_message = "stored password hash is malformed"
