"""Callback subscriptions bridging push-based sources to consumers.

Every live source in the journal (auth state, per-owner entry queries) hands
out a :class:`Subscription`. Cancelling it detaches the underlying listener;
a registration that fails is released before its error callback runs, so no
exit path leaves a dangling listener behind.
"""

from __future__ import annotations

from collections import deque
from threading import RLock
from typing import (
    Callable,
    Deque,
    Dict,
    Generic,
    Hashable,
    List,
    Optional,
    Protocol,
    TypeVar,
)

from .logging import get_logger

__all__ = [
    "ErrorCallback",
    "ListenerHub",
    "ListenerRegistration",
    "Subscription",
]

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
ErrorCallback = Callable[[Exception], None]


class Subscription(Protocol):  # pragma: no cover - interface only
    """Handle to a live listener."""

    @property
    def active(self) -> bool: ...

    def cancel(self) -> None: ...


class ListenerRegistration(Generic[K, V]):
    """One listener attached to a :class:`ListenerHub` key.

    Values carry the version stamped when their snapshot was read. A value
    at or below the last accepted version is dropped, and one thread at a
    time drains the queue, so the listener sees snapshots in version order
    even when publishers race. The callback itself runs outside the lock.
    """

    def __init__(
        self,
        key: K,
        on_next: Callable[[V], None],
        on_error: Optional[ErrorCallback],
        release: Callable[["ListenerRegistration[K, V]"], None],
    ) -> None:
        self.key = key
        self._on_next = on_next
        self._on_error = on_error
        self._release = release
        self._active = True
        self._lock = RLock()
        self._pending: Deque[V] = deque()
        self._accepted_version = 0
        self._draining = False

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._pending.clear()
        self._release(self)

    def deliver(self, value: V, version: Optional[int] = None) -> None:
        with self._lock:
            if not self._active:
                return
            if version is not None:
                if version <= self._accepted_version:
                    logger.debug(
                        "subscription_stale_value_dropped",
                        extra={"key": self.key, "version": version},
                    )
                    return
                self._accepted_version = version
            self._pending.append(value)
            if self._draining:
                return
            self._draining = True
        while True:
            with self._lock:
                if not self._active or not self._pending:
                    self._pending.clear()
                    self._draining = False
                    return
                next_value = self._pending.popleft()
            try:
                self._on_next(next_value)
            except Exception:
                logger.exception("subscription_listener_failed", extra={"key": self.key})

    def fail(self, error: Exception) -> None:
        if not self._active:
            return
        self.cancel()
        if self._on_error is None:
            logger.warning(
                "subscription_failed_without_handler",
                extra={"key": self.key, "error": repr(error)},
            )
            return
        try:
            self._on_error(error)
        except Exception:
            logger.exception("subscription_error_handler_failed", extra={"key": self.key})


class ListenerHub(Generic[K, V]):
    """Keyed registry of listeners with last-snapshot tracking.

    Callbacks always run outside the hub lock, so a listener may call back
    into the owning gateway without deadlocking. Sources stamp each snapshot
    with :meth:`next_version` while they still hold the lock they read it
    under; a publish older than the last one for its key is discarded.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._lock = RLock()
        self._listeners: Dict[K, List[ListenerRegistration[K, V]]] = {}
        self._last: Dict[K, V] = {}
        self._versions: Dict[K, int] = {}
        self._version = 0

    def next_version(self) -> int:
        with self._lock:
            self._version += 1
            return self._version

    def register(
        self,
        key: K,
        on_next: Callable[[V], None],
        on_error: Optional[ErrorCallback] = None,
    ) -> ListenerRegistration[K, V]:
        registration = ListenerRegistration(key, on_next, on_error, self._release)
        with self._lock:
            self._listeners.setdefault(key, []).append(registration)
            count = len(self._listeners[key])
        logger.debug(
            "subscription_registered",
            extra={"hub": self._name, "key": key, "listeners": count},
        )
        return registration

    def keys(self) -> List[K]:
        with self._lock:
            return list(self._listeners.keys())

    def listener_count(self, key: K | None = None) -> int:
        with self._lock:
            if key is not None:
                return len(self._listeners.get(key, []))
            return sum(len(items) for items in self._listeners.values())

    def deliver(
        self,
        registration: ListenerRegistration[K, V],
        value: V,
        *,
        version: Optional[int] = None,
    ) -> None:
        """Send ``value`` to a single registration (initial snapshots)."""

        key = registration.key
        with self._lock:
            if version is None:
                version = self.next_version()
            if registration.active and version > self._versions.get(key, 0):
                self._last[key] = value
                self._versions[key] = version
        registration.deliver(value, version)

    def publish(
        self,
        key: K,
        value: V,
        *,
        only_if_changed: bool = False,
        version: Optional[int] = None,
    ) -> bool:
        """Send ``value`` to every listener of ``key``.

        Returns ``False`` when nothing was delivered.
        """

        with self._lock:
            targets = list(self._listeners.get(key, []))
            if not targets:
                return False
            if version is None:
                version = self.next_version()
            elif version <= self._versions.get(key, 0):
                logger.debug(
                    "subscription_stale_snapshot_dropped",
                    extra={"hub": self._name, "key": key, "version": version},
                )
                return False
            self._versions[key] = version
            if only_if_changed and key in self._last and self._last[key] == value:
                return False
            self._last[key] = value
        for registration in targets:
            registration.deliver(value, version)
        return True

    def fail(self, key: K, error: Exception) -> int:
        """Fail and release every listener of ``key``."""

        with self._lock:
            targets = list(self._listeners.get(key, []))
        for registration in targets:
            registration.fail(error)
        if targets:
            logger.warning(
                "subscription_stream_failed",
                extra={
                    "hub": self._name,
                    "key": key,
                    "listeners": len(targets),
                    "error": repr(error),
                },
            )
        return len(targets)

    def close(self) -> None:
        with self._lock:
            targets = [item for items in self._listeners.values() for item in items]
        for registration in targets:
            registration.cancel()

    def _release(self, registration: ListenerRegistration[K, V]) -> None:
        with self._lock:
            items = self._listeners.get(registration.key)
            if not items:
                return
            if registration in items:
                items.remove(registration)
            if not items:
                del self._listeners[registration.key]
                self._last.pop(registration.key, None)
                self._versions.pop(registration.key, None)
        logger.debug(
            "subscription_released",
            extra={"hub": self._name, "key": registration.key},
        )
