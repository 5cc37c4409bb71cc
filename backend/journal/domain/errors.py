"""Error taxonomy shared by gateways, the sync core and controllers."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any, Dict

from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError

__all__ = [
    "EmailAlreadyInUse",
    "EmptyTitle",
    "InvalidArgument",
    "InvalidCredentials",
    "JournalError",
    "NetworkUnavailable",
    "NotFound",
    "NotSignedIn",
    "PermissionDenied",
    "RateLimited",
    "UnknownError",
    "UserNotFound",
    "WeakPassword",
    "describe_error",
    "from_db_error",
]


class JournalError(Exception):
    """Base class for every failure surfaced to journal callers."""

    error_code = "unknown"
    default_message = "Something went wrong. Try again."
    status_code = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str | None = None,
        *,
        details: Dict[str, Any] | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class NetworkUnavailable(JournalError):
    error_code = "network_unavailable"
    default_message = "No connection. Check your network and try again."
    status_code = HTTPStatus.SERVICE_UNAVAILABLE


class PermissionDenied(JournalError):
    error_code = "permission_denied"
    default_message = "You don't have access to these entries."
    status_code = HTTPStatus.FORBIDDEN


class InvalidArgument(JournalError):
    error_code = "invalid_argument"
    default_message = "The request was invalid."
    status_code = HTTPStatus.BAD_REQUEST


class NotFound(JournalError):
    error_code = "not_found"
    default_message = "That entry no longer exists."
    status_code = HTTPStatus.NOT_FOUND


class InvalidCredentials(JournalError):
    error_code = "invalid_credentials"
    default_message = "Incorrect email or password."
    status_code = HTTPStatus.UNAUTHORIZED


class UserNotFound(JournalError):
    error_code = "user_not_found"
    default_message = "No account exists for that email."
    status_code = HTTPStatus.NOT_FOUND


class WeakPassword(JournalError):
    error_code = "weak_password"
    default_message = "Password must be at least 6 characters."
    status_code = HTTPStatus.BAD_REQUEST


class EmailAlreadyInUse(JournalError):
    error_code = "email_already_in_use"
    default_message = "That email is already registered. Try signing in."
    status_code = HTTPStatus.CONFLICT


class RateLimited(JournalError):
    error_code = "rate_limited"
    default_message = "Too many attempts. Wait a moment and try again."
    status_code = HTTPStatus.TOO_MANY_REQUESTS


class UnknownError(JournalError):
    error_code = "unknown"


class EmptyTitle(JournalError):
    error_code = "empty_title"
    default_message = "A title is required."
    status_code = HTTPStatus.UNPROCESSABLE_ENTITY


class NotSignedIn(JournalError):
    error_code = "not_signed_in"
    default_message = "Sign in to save your thoughts."
    status_code = HTTPStatus.UNAUTHORIZED


def describe_error(exc: BaseException) -> str:
    """Return a short human-readable message for any failure."""

    if isinstance(exc, JournalError):
        return exc.message
    text = str(exc).strip()
    return text or UnknownError.default_message


def from_db_error(exc: SQLAlchemyError) -> JournalError:
    """Translate a SQLAlchemy failure into the journal taxonomy."""

    if isinstance(exc, OperationalError) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return NetworkUnavailable(details={"cause": type(exc).__name__})
    return UnknownError(str(exc.orig) if isinstance(exc, DBAPIError) else str(exc))
