from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ErrorDescriptor:
    status: int
    code: str
    message: str

    def to_body(self) -> dict[str, object]:
        return {"success": False, "error": self.message, "code": self.code}


class AuthError(RuntimeError):
    """
    Base class for every failure the auth core reports to callers.

    Subclasses pin an HTTP status and a stable machine-readable code; the
    message may be overridden per raise site.
    """

    status_code = 401
    code = "AUTH_ERROR"
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        super().__init__(message or self.default_message)
        if status_code is not None:
            self.status_code = int(status_code)

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else self.default_message

    def descriptor(self) -> ErrorDescriptor:
        return ErrorDescriptor(status=self.status_code, code=self.code, message=self.message)


class InvalidRequest(AuthError):
    status_code = 400
    code = "INVALID_REQUEST"
    default_message = "Invalid request"


class MissingCredentials(AuthError):
    code = "AUTH_REQUIRED"
    default_message = "Authentication required"


class InvalidSignature(AuthError):
    code = "INVALID_SIGNATURE"
    default_message = "Invalid signature"


class InvalidToken(AuthError):
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class TokenExpired(InvalidToken):
    code = "TOKEN_EXPIRED"


class WrongTokenType(AuthError):
    code = "INVALID_TOKEN_TYPE"
    default_message = "Invalid token type"


class InsufficientPermissions(AuthError):
    status_code = 403
    code = "INSUFFICIENT_PERMISSIONS"
    default_message = "Insufficient permissions"


class SessionNotFound(AuthError):
    code = "SESSION_NOT_FOUND"
    default_message = "Session not found"


class SessionInactive(AuthError):
    code = "SESSION_INACTIVE"
    default_message = "Session is no longer active"


class UserNotFound(AuthError):
    status_code = 404
    code = "USER_NOT_FOUND"
    default_message = "User not found"


class PersistenceFailure(AuthError):
    status_code = 500
    code = "PERSISTENCE_FAILURE"
    default_message = "Storage unavailable"


class RateLimited(AuthError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Rate limit exceeded"
