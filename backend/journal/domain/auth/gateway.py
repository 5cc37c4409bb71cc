"""Identity provider gateway: session state, credentials and user-change events."""

from __future__ import annotations

import re
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import RLock
from typing import Callable, Deque, Dict, Optional, Protocol
from uuid import uuid4

from passlib.context import CryptContext
from sqlalchemy import Column, DateTime, MetaData, String, Table, Text, insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ...infra.logging import get_logger
from ...infra.subscriptions import ListenerHub, Subscription
from ..errors import (
    EmailAlreadyInUse,
    InvalidCredentials,
    RateLimited,
    UnknownError,
    UserNotFound,
    WeakPassword,
    from_db_error,
)

__all__ = [
    "AuthGateway",
    "CredentialStore",
    "InMemoryCredentialStore",
    "LocalAuthGateway",
    "SqlCredentialStore",
    "UserCallback",
    "UserCredential",
    "build_users_table",
]

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
ANONYMOUS_PREFIX = "anon-"
SESSION_KEY = "session"
USERS_TABLE = "journalUsers"
PASSWORD_CONTEXT = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

UserCallback = Callable[[Optional[str]], None]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.fullmatch(email or ""))


@dataclass(frozen=True)
class UserCredential:
    """Stored account for email/password sign-in."""

    user_id: str
    email: str
    password_hash: str
    created_at: datetime


class CredentialStore(Protocol):  # pragma: no cover - interface only
    def find_by_email(self, email: str) -> Optional[UserCredential]: ...

    def add(self, credential: UserCredential) -> None: ...


class InMemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._lock = RLock()
        self._by_email: Dict[str, UserCredential] = {}

    def find_by_email(self, email: str) -> Optional[UserCredential]:
        with self._lock:
            return self._by_email.get(email)

    def add(self, credential: UserCredential) -> None:
        with self._lock:
            if credential.email in self._by_email:
                raise EmailAlreadyInUse(details={"email": credential.email})
            self._by_email[credential.email] = credential


def build_users_table(metadata: MetaData, name: str = USERS_TABLE) -> Table:
    return Table(
        name,
        metadata,
        Column("user_id", String(length=64), primary_key=True),
        Column("email", String(length=320), nullable=False, unique=True),
        Column("password_hash", Text(), nullable=False),
        Column("created_at", DateTime(timezone=True), nullable=False),
    )


class SqlCredentialStore(CredentialStore):
    """SQLAlchemy-backed account table."""

    def __init__(self, engine: Engine, *, table: Optional[Table] = None) -> None:
        self._engine = engine
        if table is not None:
            self._users = table
            self._metadata = table.metadata
        else:
            self._metadata = MetaData()
            self._users = build_users_table(self._metadata)

    def create_schema(self) -> None:
        try:
            self._metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc

    def find_by_email(self, email: str) -> Optional[UserCredential]:
        stmt = select(self._users).where(self._users.c.email == email)
        try:
            with self._engine.begin() as conn:
                row = conn.execute(stmt).mappings().first()
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc
        if row is None:
            return None
        return UserCredential(
            user_id=row["user_id"],
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=row["created_at"],
        )

    def add(self, credential: UserCredential) -> None:
        stmt = insert(self._users).values(
            user_id=credential.user_id,
            email=credential.email,
            password_hash=credential.password_hash,
            created_at=credential.created_at,
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except IntegrityError as exc:
            raise EmailAlreadyInUse(details={"email": credential.email}) from exc
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc


class AuthGateway(Protocol):  # pragma: no cover - interface only
    """Identity provider operations the journal relies on."""

    def current_user_id(self) -> Optional[str]: ...

    def add_listener(self, callback: UserCallback) -> Subscription: ...

    def sign_in(self, email: str, password: str) -> str: ...

    def sign_up(self, email: str, password: str) -> str: ...

    def sign_in_anonymously(self) -> str: ...

    def sign_out(self) -> None: ...


class LocalAuthGateway(AuthGateway):
    """Email/password identity provider for a single local session.

    Listeners receive the current user immediately and again after every
    sign-in and sign-out. Repeated failed sign-ins for one email within
    ``lockout_seconds`` are rejected with :class:`RateLimited`.
    """

    def __init__(
        self,
        credentials: Optional[CredentialStore] = None,
        *,
        min_password_length: int = 6,
        max_failed_attempts: int = 5,
        lockout_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
        password_context: Optional[CryptContext] = None,
    ) -> None:
        self._credentials = credentials or InMemoryCredentialStore()
        self._min_password_length = min_password_length
        self._max_failed_attempts = max_failed_attempts
        self._lockout_seconds = lockout_seconds
        self._clock = clock
        self._passwords = password_context or PASSWORD_CONTEXT
        self._lock = RLock()
        self._current: Optional[str] = None
        self._failures: Dict[str, Deque[float]] = {}
        self._hub: ListenerHub[str, Optional[str]] = ListenerHub("auth")

    def current_user_id(self) -> Optional[str]:
        with self._lock:
            return self._current

    def add_listener(self, callback: UserCallback) -> Subscription:
        registration = self._hub.register(SESSION_KEY, callback)
        with self._lock:
            current = self._current
            version = self._hub.next_version()
        self._hub.deliver(registration, current, version=version)
        return registration

    def sign_in(self, email: str, password: str) -> str:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise InvalidCredentials("That email address is badly formatted.")
        self._check_rate_limit(email)
        if len(password or "") < self._min_password_length:
            raise WeakPassword(self._weak_password_message())
        credential = self._credentials.find_by_email(email)
        if credential is None:
            self._record_failure(email)
            raise UserNotFound()
        try:
            verified = self._passwords.verify(password, credential.password_hash)
        except (ValueError, TypeError) as exc:
            raise UnknownError("Stored credentials are unreadable.") from exc
        if not verified:
            self._record_failure(email)
            raise InvalidCredentials()
        with self._lock:
            self._failures.pop(email, None)
        logger.info("auth_signed_in", extra={"user_id": credential.user_id})
        self._set_current(credential.user_id)
        return credential.user_id

    def sign_up(self, email: str, password: str) -> str:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise InvalidCredentials("That email address is badly formatted.")
        if len(password or "") < self._min_password_length:
            raise WeakPassword(self._weak_password_message())
        if self._credentials.find_by_email(email) is not None:
            raise EmailAlreadyInUse(details={"email": email})
        credential = UserCredential(
            user_id=uuid4().hex,
            email=email,
            password_hash=self._passwords.hash(password),
            created_at=utcnow(),
        )
        self._credentials.add(credential)
        logger.info("auth_signed_up", extra={"user_id": credential.user_id})
        self._set_current(credential.user_id)
        return credential.user_id

    def sign_in_anonymously(self) -> str:
        user_id = f"{ANONYMOUS_PREFIX}{uuid4().hex}"
        logger.info("auth_signed_in_anonymously", extra={"user_id": user_id})
        self._set_current(user_id)
        return user_id

    def sign_out(self) -> None:
        with self._lock:
            previous = self._current
        logger.info("auth_signed_out", extra={"user_id": previous})
        self._set_current(None)

    def listener_count(self) -> int:
        return self._hub.listener_count(SESSION_KEY)

    def _set_current(self, user_id: Optional[str]) -> None:
        with self._lock:
            self._current = user_id
            version = self._hub.next_version()
        self._hub.publish(SESSION_KEY, user_id, version=version)

    def _weak_password_message(self) -> str:
        return f"Password must be at least {self._min_password_length} characters."

    def _check_rate_limit(self, email: str) -> None:
        with self._lock:
            attempts = self._prune_failures(email)
            if len(attempts) >= self._max_failed_attempts:
                logger.warning(
                    "auth_rate_limited",
                    extra={"email": email, "failed_attempts": len(attempts)},
                )
                raise RateLimited()

    def _record_failure(self, email: str) -> None:
        with self._lock:
            attempts = self._prune_failures(email)
            attempts.append(self._clock())
            self._failures[email] = attempts

    def _prune_failures(self, email: str) -> Deque[float]:
        attempts = self._failures.get(email) or deque()
        cutoff = self._clock() - self._lockout_seconds
        while attempts and attempts[0] <= cutoff:
            attempts.popleft()
        return attempts
