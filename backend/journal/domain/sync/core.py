"""Real-time sync core bridging auth changes and per-user live entry queries."""

from __future__ import annotations

from functools import partial
from threading import RLock
from typing import Callable, List, Optional

from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ...infra.subscriptions import ListenerHub, Subscription
from ..auth.gateway import AuthGateway
from ..entries.models import Entry
from ..entries.repository import JournalRepository
from ..errors import JournalError, UnknownError, describe_error
from .states import JournalUiState, SyncStatus

__all__ = ["JournalSync", "SIGNED_OUT_MESSAGE", "StateListener"]

logger = get_logger(__name__)

SIGNED_OUT_MESSAGE = "Sign in to view your entries."
STATE_KEY = "state"

StateListener = Callable[[JournalUiState], None]


class JournalSync:
    """Owns the published journal state for the signed-in user.

    The core listens to the auth gateway. Each signed-in user gets exactly
    one live entry query; it is cancelled before the next one opens and on
    sign-out. Both event sources funnel through one re-entrant lock, so every
    transition is an atomic read-modify-write and listeners observe states
    in publication order. Snapshots from a cancelled or superseded query are
    dropped.
    """

    def __init__(
        self,
        auth: AuthGateway,
        repository: JournalRepository,
        *,
        anonymous_sign_in: bool = False,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._auth = auth
        self._repository = repository
        self._anonymous_sign_in = anonymous_sign_in
        self._metrics = metrics or get_metrics_client()
        self._lock = RLock()
        self._state = JournalUiState()
        self._listeners: ListenerHub[str, JournalUiState] = ListenerHub("sync.state")
        self._auth_subscription: Optional[Subscription] = None
        self._entries_subscription: Optional[Subscription] = None
        self._active_owner: Optional[str] = None
        self._generation = 0
        self._started = False
        self._closed = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------
    @property
    def state(self) -> JournalUiState:
        with self._lock:
            return self._state

    @property
    def active_owner_id(self) -> Optional[str]:
        with self._lock:
            return self._active_owner

    @property
    def closed(self) -> bool:
        return self._closed

    def add_state_listener(self, listener: StateListener) -> Subscription:
        """Deliver the current state now and every published state after it."""

        with self._lock:
            registration = self._listeners.register(STATE_KEY, listener)
            self._listeners.deliver(registration, self._state)
        return registration

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("journal sync has been closed")
            if self._started:
                return
            self._started = True
        if self._anonymous_sign_in and self._auth.current_user_id() is None:
            try:
                self._auth.sign_in_anonymously()
            except JournalError as exc:
                logger.warning(
                    "journal_sync_anonymous_sign_in_failed",
                    extra={"error_code": exc.error_code},
                )
                with self._lock:
                    self._publish_locked(
                        JournalUiState(
                            is_loading=False, message=describe_error(exc), error=exc
                        )
                    )
        subscription = self._auth.add_listener(self._on_user_changed)
        with self._lock:
            if self._closed:
                subscription.cancel()
                return
            self._auth_subscription = subscription
        logger.info("journal_sync_started")

    def clear_message(self) -> None:
        with self._lock:
            if self._state.message is None and self._state.error is None:
                return
            self._publish_locked(self._state.with_message(None))

    def retry(self) -> None:
        """Reopen the live query for the current user after a stream failure."""

        with self._lock:
            if self._closed or self._state.status is not SyncStatus.FAILED:
                return
            owner_id = self._active_owner
        if owner_id is not None:
            self._on_user_changed(owner_id)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_entries_locked()
            if self._auth_subscription is not None:
                self._auth_subscription.cancel()
                self._auth_subscription = None
        self._listeners.close()
        logger.info("journal_sync_closed")

    def __enter__(self) -> "JournalSync":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------
    def _on_user_changed(self, user_id: Optional[str]) -> None:
        with self._lock:
            if self._closed:
                return
            self._cancel_entries_locked()
            if user_id is None:
                self._publish_locked(JournalUiState.signed_out(SIGNED_OUT_MESSAGE))
                logger.info("journal_sync_signed_out")
                return

            self._generation += 1
            generation = self._generation
            self._active_owner = user_id
            self._publish_locked(JournalUiState.loading(user_id))
            logger.info(
                "journal_sync_loading",
                extra={"user_id": user_id, "generation": generation},
            )
            self._metrics.increment("journal_entry_subscriptions_opened_total")
            try:
                subscription = self._repository.observe_entries(
                    user_id,
                    partial(self._on_entries, generation),
                    partial(self._on_entries_failed, generation),
                )
            except JournalError as exc:
                self._on_entries_failed(generation, exc)
                return
            self._entries_subscription = subscription
            self._metrics.gauge(
                "journal_entry_subscriptions_active", 1 if subscription.active else 0
            )

    def _on_entries(self, generation: int, entries: List[Entry]) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                logger.debug(
                    "journal_sync_stale_snapshot_dropped",
                    extra={"generation": generation},
                )
                return
            owner_id = self._active_owner
            if owner_id is None:
                return
            self._publish_locked(JournalUiState.ready(owner_id, entries))
        logger.info(
            "journal_sync_ready",
            extra={"user_id": owner_id, "entries": len(entries)},
        )

    def _on_entries_failed(self, generation: int, error: Exception) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            failure = (
                error
                if isinstance(error, JournalError)
                else UnknownError(describe_error(error))
            )
            self._metrics.increment("journal_entry_stream_failures_total")
            self._metrics.gauge("journal_entry_subscriptions_active", 0)
            self._publish_locked(self._state.failed(failure))
            owner_id = self._active_owner
        logger.warning(
            "journal_sync_stream_failed",
            extra={"user_id": owner_id, "error_code": failure.error_code},
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _cancel_entries_locked(self) -> None:
        self._generation += 1
        self._active_owner = None
        subscription = self._entries_subscription
        self._entries_subscription = None
        if subscription is not None:
            subscription.cancel()
            self._metrics.gauge("journal_entry_subscriptions_active", 0)

    def _publish_locked(self, state: JournalUiState) -> None:
        self._state = state
        self._listeners.publish(STATE_KEY, state)
