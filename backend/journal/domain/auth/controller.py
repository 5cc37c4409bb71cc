"""Sign-in/sign-up form controller."""

from __future__ import annotations

from dataclasses import dataclass, replace
from threading import RLock
from typing import Optional

from ...infra.logging import get_logger
from ..errors import JournalError, describe_error
from .gateway import AuthGateway, is_valid_email

__all__ = ["AuthFormState", "SignInController"]

logger = get_logger(__name__)

INVALID_EMAIL_MESSAGE = "Enter a valid email address."
SIGNED_IN_MESSAGE = "Welcome back!"
SIGNED_UP_MESSAGE = "Account created!"


@dataclass(frozen=True)
class AuthFormState:
    email: str = ""
    password: str = ""
    email_error: Optional[str] = None
    password_error: Optional[str] = None
    is_loading: bool = False
    message: Optional[str] = None
    error: Optional[JournalError] = None
    navigate_home: bool = False


class SignInController:
    """Holds the email/password draft and runs sign-in or sign-up against it."""

    def __init__(self, auth: AuthGateway, *, min_password_length: int = 6) -> None:
        self._auth = auth
        self._min_password_length = min_password_length
        self._lock = RLock()
        self._state = AuthFormState()

    @property
    def state(self) -> AuthFormState:
        return self._state

    def set_email(self, email: str) -> None:
        self._update(email=(email or "").strip(), email_error=None)

    def set_password(self, password: str) -> None:
        self._update(password=(password or "").strip(), password_error=None)

    def sign_in(self) -> AuthFormState:
        return self._submit("sign_in")

    def sign_up(self) -> AuthFormState:
        return self._submit("sign_up")

    def consume_navigation(self) -> None:
        self._update(navigate_home=False)

    def clear_message(self) -> None:
        self._update(message=None, error=None)

    def _submit(self, action: str) -> AuthFormState:
        current = self._state
        if not self._validate(current):
            return self._state
        self._update(is_loading=True, message=None, error=None, navigate_home=False)
        operation = self._auth.sign_in if action == "sign_in" else self._auth.sign_up
        try:
            operation(current.email, current.password)
        except JournalError as exc:
            logger.info(
                "auth_form_failed",
                extra={"action": action, "error_code": exc.error_code},
            )
            return self._update(is_loading=False, message=describe_error(exc), error=exc)
        return self._update(
            is_loading=False,
            message=SIGNED_IN_MESSAGE if action == "sign_in" else SIGNED_UP_MESSAGE,
            navigate_home=True,
        )

    def _validate(self, current: AuthFormState) -> bool:
        email_error = None if is_valid_email(current.email) else INVALID_EMAIL_MESSAGE
        password_error = None
        if len(current.password) < self._min_password_length:
            password_error = (
                f"Password must be at least {self._min_password_length} characters."
            )
        if email_error or password_error:
            self._update(email_error=email_error, password_error=password_error)
            return False
        return True

    def _update(self, **changes) -> AuthFormState:
        with self._lock:
            self._state = replace(self._state, **changes)
            return self._state
