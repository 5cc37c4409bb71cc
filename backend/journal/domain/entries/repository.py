"""Repository seam between entry gateways and their consumers."""

from __future__ import annotations

from threading import Event
from typing import List, Optional, Protocol

from ...infra.logging import get_logger
from ...infra.subscriptions import ErrorCallback, Subscription
from ..errors import JournalError, NetworkUnavailable
from .gateway import EntriesCallback, EntryStoreGateway
from .models import Entry

__all__ = ["GatewayJournalRepository", "JournalRepository"]

logger = get_logger(__name__)


class JournalRepository(Protocol):  # pragma: no cover - interface only
    """Operations the sync core and editor need from entry storage."""

    def observe_entries(
        self,
        owner_id: str,
        on_next: EntriesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...

    def add_entry(self, owner_id: str, entry: Entry) -> Entry: ...

    def update_entry(self, owner_id: str, entry: Entry) -> None: ...

    def delete_entry(self, entry_id: str) -> None: ...

    def first_snapshot(self, owner_id: str) -> List[Entry]: ...

    def get_entry(self, owner_id: str, entry_id: str) -> Entry: ...


class GatewayJournalRepository(JournalRepository):
    """Delegates to an :class:`EntryStoreGateway`."""

    def __init__(
        self,
        gateway: EntryStoreGateway,
        *,
        snapshot_timeout_seconds: float | None = None,
    ) -> None:
        self._gateway = gateway
        self._snapshot_timeout = snapshot_timeout_seconds

    @property
    def gateway(self) -> EntryStoreGateway:
        return self._gateway

    def observe_entries(
        self,
        owner_id: str,
        on_next: EntriesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        return self._gateway.observe(owner_id, on_next, on_error)

    def add_entry(self, owner_id: str, entry: Entry) -> Entry:
        return self._gateway.create(owner_id, entry)

    def update_entry(self, owner_id: str, entry: Entry) -> None:
        self._gateway.update(owner_id, entry)

    def delete_entry(self, entry_id: str) -> None:
        self._gateway.delete(entry_id)

    def first_snapshot(self, owner_id: str) -> List[Entry]:
        """Open a live query, wait for its first emission, then release it."""

        ready = Event()
        outcome: dict[str, object] = {}

        def _on_next(entries: List[Entry]) -> None:
            if not ready.is_set():
                outcome["entries"] = list(entries)
                ready.set()

        def _on_error(error: Exception) -> None:
            if not ready.is_set():
                outcome["error"] = error
                ready.set()

        subscription = self._gateway.observe(owner_id, _on_next, _on_error)
        try:
            if not ready.wait(self._snapshot_timeout):
                logger.warning(
                    "entry_snapshot_timeout",
                    extra={
                        "owner_id": owner_id,
                        "timeout_seconds": self._snapshot_timeout,
                    },
                )
                raise NetworkUnavailable(details={"owner_id": owner_id})
        finally:
            subscription.cancel()
        error = outcome.get("error")
        if isinstance(error, JournalError):
            raise error
        if error is not None:
            raise NetworkUnavailable(str(error))
        return list(outcome.get("entries") or [])  # type: ignore[arg-type]

    def get_entry(self, owner_id: str, entry_id: str) -> Entry:
        return self._gateway.get(owner_id, entry_id)
