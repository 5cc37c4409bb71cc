"""Entry store gateway implementations with live per-owner queries."""

from __future__ import annotations

from dataclasses import replace
from threading import Event, RLock, Thread
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)
from uuid import uuid4

from sqlalchemy import (
    BigInteger,
    Column,
    Index,
    MetaData,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from ...infra.logging import get_logger
from ...infra.subscriptions import ErrorCallback, ListenerHub, Subscription
from ..errors import (
    InvalidArgument,
    JournalError,
    NetworkUnavailable,
    NotFound,
    PermissionDenied,
    from_db_error,
)
from .models import (
    FIELD_BODY,
    FIELD_OWNER_ID,
    FIELD_TIMESTAMP,
    FIELD_TITLE,
    JOURNAL_COLLECTION,
    Entry,
    now_ms,
)

__all__ = [
    "EntriesCallback",
    "EntryStoreGateway",
    "InMemoryEntryStoreGateway",
    "OwnerAccessRule",
    "SqlEntryStoreGateway",
    "build_entries_table",
    "build_entry_store_gateway",
]

logger = get_logger(__name__)

EntriesCallback = Callable[[List[Entry]], None]


class CurrentUserSource(Protocol):  # pragma: no cover - interface only
    def current_user_id(self) -> Optional[str]: ...


class EntryStoreGateway(Protocol):  # pragma: no cover - interface only
    """Document collection of journal entries with live owner queries."""

    def observe(
        self,
        owner_id: str,
        on_next: EntriesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription: ...

    def create(self, owner_id: str, entry: Entry) -> Entry: ...

    def update(self, owner_id: str, entry: Entry) -> None: ...

    def delete(self, entry_id: str) -> None: ...

    def get(self, owner_id: str, entry_id: str) -> Entry: ...


class OwnerAccessRule:
    """Only the signed-in owner may read or write their entries.

    Without an auth source every request is allowed.
    """

    def __init__(self, auth: Optional[CurrentUserSource] = None) -> None:
        self._auth = auth

    def check(self, owner_id: str, *, action: str) -> None:
        if self._auth is None:
            return
        if self._auth.current_user_id() != owner_id:
            raise PermissionDenied(details={"action": action, "owner_id": owner_id})


def sort_entries(entries: Sequence[Entry]) -> List[Entry]:
    """Newest first; ids break ties so equal timestamps order stably."""

    return sorted(entries, key=lambda entry: (entry.created_at, entry.id), reverse=True)


class _LiveEntryGateway:
    """Shared listener bookkeeping for gateways that push full snapshots."""

    hub_name = "entries"

    def __init__(
        self,
        *,
        auth: Optional[CurrentUserSource] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._hub: ListenerHub[str, List[Entry]] = ListenerHub(self.hub_name)
        self._access = OwnerAccessRule(auth)
        self._id_factory = id_factory or (lambda: uuid4().hex)

    def observe(
        self,
        owner_id: str,
        on_next: EntriesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        registration = self._hub.register(owner_id, on_next, on_error)
        try:
            self._access.check(owner_id, action="observe")
            snapshot, version = self._read_snapshot(owner_id)
        except JournalError as exc:
            registration.fail(exc)
            return registration
        logger.info(
            "entry_query_opened",
            extra={"owner_id": owner_id, "entries": len(snapshot)},
        )
        self._hub.deliver(registration, snapshot, version=version)
        return registration

    def listener_count(self, owner_id: str | None = None) -> int:
        return self._hub.listener_count(owner_id)

    def close(self) -> None:
        self._hub.close()

    def _read_snapshot(self, owner_id: str) -> Tuple[List[Entry], int]:
        """Return the owner's entries and the version stamped when they were read."""

        raise NotImplementedError

    def _new_id(self) -> str:
        return self._id_factory()


class InMemoryEntryStoreGateway(_LiveEntryGateway, EntryStoreGateway):
    """In-process document store used for local development and tests."""

    hub_name = "entries.memory"

    def __init__(
        self,
        *,
        auth: Optional[CurrentUserSource] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        super().__init__(auth=auth, id_factory=id_factory)
        self._lock = RLock()
        self._documents: Dict[str, Dict[str, Any]] = {}

    def create(self, owner_id: str, entry: Entry) -> Entry:
        self._access.check(owner_id, action="create")
        with self._lock:
            entry_id = entry.id or self._new_id()
            existing = self._documents.get(entry_id)
            if existing is not None and existing.get(FIELD_OWNER_ID) != owner_id:
                raise PermissionDenied(details={"action": "create", "entry_id": entry_id})
            stored = replace(
                entry,
                id=entry_id,
                owner_id=owner_id,
                created_at=entry.created_at if entry.created_at > 0 else now_ms(),
            )
            self._documents[entry_id] = stored.to_record()
        logger.info("entry_created", extra={"entry_id": entry_id, "owner_id": owner_id})
        self._publish(owner_id)
        return stored

    def update(self, owner_id: str, entry: Entry) -> None:
        if not entry.id.strip():
            raise InvalidArgument("Entry id cannot be blank when updating")
        self._access.check(owner_id, action="update")
        with self._lock:
            current = self._documents.get(entry.id)
            if current is None:
                raise NotFound(details={"entry_id": entry.id})
            existing = Entry.from_record(entry.id, current)
            if existing.owner_id != owner_id:
                raise PermissionDenied(details={"action": "update", "entry_id": entry.id})
            stored = replace(
                entry,
                owner_id=owner_id,
                created_at=entry.created_at
                if entry.created_at > 0
                else existing.created_at,
            )
            self._documents[entry.id] = stored.to_record()
        logger.info("entry_updated", extra={"entry_id": entry.id, "owner_id": owner_id})
        self._publish(owner_id)

    def delete(self, entry_id: str) -> None:
        with self._lock:
            current = self._documents.get(entry_id)
            if current is None:
                logger.debug("entry_delete_noop", extra={"entry_id": entry_id})
                return
            owner_id = Entry.from_record(entry_id, current).owner_id
            self._access.check(owner_id, action="delete")
            del self._documents[entry_id]
        logger.info("entry_deleted", extra={"entry_id": entry_id, "owner_id": owner_id})
        self._publish(owner_id)

    def get(self, owner_id: str, entry_id: str) -> Entry:
        self._access.check(owner_id, action="get")
        with self._lock:
            current = self._documents.get(entry_id)
        if current is None:
            raise NotFound(details={"entry_id": entry_id})
        entry = Entry.from_record(entry_id, current)
        if entry.owner_id != owner_id:
            raise NotFound(details={"entry_id": entry_id})
        return entry

    def put_document(self, entry_id: str, data: Mapping[str, Any]) -> None:
        """Write a raw document as another client would, bypassing access rules."""

        with self._lock:
            self._documents[entry_id] = dict(data)
        owner_id = Entry.from_record(entry_id, data).owner_id
        self._publish(owner_id)

    def interrupt(self, owner_id: str, error: Exception | None = None) -> int:
        """Fail open queries for ``owner_id`` as a dropped connection would."""

        return self._hub.fail(owner_id, error or NetworkUnavailable())

    def _read_snapshot(self, owner_id: str) -> Tuple[List[Entry], int]:
        with self._lock:
            entries = [
                Entry.from_record(entry_id, data)
                for entry_id, data in self._documents.items()
            ]
            version = self._hub.next_version()
        owned = [entry for entry in entries if entry.owner_id == owner_id]
        return sort_entries(owned), version

    def _publish(self, owner_id: str) -> None:
        snapshot, version = self._read_snapshot(owner_id)
        self._hub.publish(owner_id, snapshot, version=version)


def build_entries_table(metadata: MetaData, name: str = JOURNAL_COLLECTION) -> Table:
    """Table holding one row per entry document, keyed by document id."""

    return Table(
        name,
        metadata,
        Column("id", String(length=64), primary_key=True),
        Column(FIELD_TITLE, Text(), nullable=False, default=""),
        Column(FIELD_BODY, Text(), nullable=False, default=""),
        Column(FIELD_TIMESTAMP, BigInteger(), nullable=False),
        Column(FIELD_OWNER_ID, String(length=128), nullable=False),
        Index(f"ix_{name}_owner_timestamp", FIELD_OWNER_ID, FIELD_TIMESTAMP),
    )


class SqlEntryStoreGateway(_LiveEntryGateway, EntryStoreGateway):
    """SQLAlchemy-backed adapter with change notification.

    Writes made through this gateway republish the affected owner's query
    right away. Writes from other processes are picked up by :meth:`refresh`,
    which the optional polling thread calls every ``poll_interval_seconds``.
    """

    hub_name = "entries.sql"

    def __init__(
        self,
        engine: Engine,
        *,
        table: Optional[Table] = None,
        collection: str = JOURNAL_COLLECTION,
        auth: Optional[CurrentUserSource] = None,
        id_factory: Optional[Callable[[], str]] = None,
        poll_interval_seconds: float = 0.0,
    ) -> None:
        super().__init__(auth=auth, id_factory=id_factory)
        self._engine = engine
        if table is not None:
            self._entries = table
            self._metadata = table.metadata
        else:
            self._metadata = MetaData()
            self._entries = build_entries_table(self._metadata, collection)
        self._poll_interval = poll_interval_seconds
        self._poll_stop = Event()
        self._poll_thread: Thread | None = None
        # Reads and their version stamps are serialized so stamps follow data age.
        self._snapshot_lock = RLock()

    def create_schema(self) -> None:
        try:
            self._metadata.create_all(self._engine)
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create(self, owner_id: str, entry: Entry) -> Entry:
        self._access.check(owner_id, action="create")
        stored = replace(
            entry,
            id=entry.id or self._new_id(),
            owner_id=owner_id,
            created_at=entry.created_at if entry.created_at > 0 else now_ms(),
        )
        values = stored.to_record()
        try:
            with self._engine.begin() as conn:
                current = self._fetch_row(conn, stored.id)
                if current is None:
                    conn.execute(insert(self._entries).values(id=stored.id, **values))
                elif current[FIELD_OWNER_ID] != owner_id:
                    raise PermissionDenied(
                        details={"action": "create", "entry_id": stored.id}
                    )
                else:
                    conn.execute(
                        update(self._entries)
                        .where(self._entries.c.id == stored.id)
                        .values(**values)
                    )
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc
        logger.info("entry_created", extra={"entry_id": stored.id, "owner_id": owner_id})
        self._publish(owner_id)
        return stored

    def update(self, owner_id: str, entry: Entry) -> None:
        if not entry.id.strip():
            raise InvalidArgument("Entry id cannot be blank when updating")
        self._access.check(owner_id, action="update")
        try:
            with self._engine.begin() as conn:
                current = self._fetch_row(conn, entry.id)
                if current is None:
                    raise NotFound(details={"entry_id": entry.id})
                if current[FIELD_OWNER_ID] != owner_id:
                    raise PermissionDenied(
                        details={"action": "update", "entry_id": entry.id}
                    )
                created_at = (
                    entry.created_at if entry.created_at > 0 else current[FIELD_TIMESTAMP]
                )
                values = replace(entry, owner_id=owner_id, created_at=created_at).to_record()
                conn.execute(
                    update(self._entries)
                    .where(self._entries.c.id == entry.id)
                    .values(**values)
                )
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc
        logger.info("entry_updated", extra={"entry_id": entry.id, "owner_id": owner_id})
        self._publish(owner_id)

    def delete(self, entry_id: str) -> None:
        try:
            with self._engine.begin() as conn:
                current = self._fetch_row(conn, entry_id)
                if current is None:
                    logger.debug("entry_delete_noop", extra={"entry_id": entry_id})
                    return
                owner_id = current[FIELD_OWNER_ID]
                self._access.check(owner_id, action="delete")
                conn.execute(delete(self._entries).where(self._entries.c.id == entry_id))
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc
        logger.info("entry_deleted", extra={"entry_id": entry_id, "owner_id": owner_id})
        self._publish(owner_id)

    def get(self, owner_id: str, entry_id: str) -> Entry:
        self._access.check(owner_id, action="get")
        try:
            with self._engine.begin() as conn:
                row = self._fetch_row(conn, entry_id)
        except SQLAlchemyError as exc:
            raise from_db_error(exc) from exc
        if row is None:
            raise NotFound(details={"entry_id": entry_id})
        entry = Entry.from_record(entry_id, row)
        if entry.owner_id != owner_id:
            raise NotFound(details={"entry_id": entry_id})
        return entry

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------
    def refresh(self) -> int:
        """Re-query every observed owner; publish snapshots that changed."""

        published = 0
        for owner_id in self._hub.keys():
            try:
                snapshot, version = self._read_snapshot(owner_id)
            except JournalError as exc:
                self._hub.fail(owner_id, exc)
                continue
            if self._hub.publish(
                owner_id, snapshot, only_if_changed=True, version=version
            ):
                published += 1
        return published

    def start_polling(self) -> None:
        if self._poll_interval <= 0 or self._poll_thread is not None:
            return
        self._poll_stop.clear()
        self._poll_thread = Thread(
            target=self._poll_loop, name="journal-entry-poller", daemon=True
        )
        self._poll_thread.start()
        logger.info(
            "entry_polling_started",
            extra={"interval_seconds": self._poll_interval},
        )

    def stop_polling(self) -> None:
        thread = self._poll_thread
        if thread is None:
            return
        self._poll_stop.set()
        thread.join(timeout=self._poll_interval * 2 + 1)
        self._poll_thread = None

    def close(self) -> None:
        self.stop_polling()
        super().close()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _poll_loop(self) -> None:
        while not self._poll_stop.wait(self._poll_interval):
            try:
                self.refresh()
            except Exception:
                logger.exception("entry_polling_failed")

    def _fetch_row(self, conn, entry_id: str) -> Optional[Mapping[str, Any]]:
        stmt = select(self._entries).where(self._entries.c.id == entry_id)
        return conn.execute(stmt).mappings().first()

    def _read_snapshot(self, owner_id: str) -> Tuple[List[Entry], int]:
        c = self._entries.c
        stmt = (
            select(self._entries)
            .where(c[FIELD_OWNER_ID] == owner_id)
            .order_by(c[FIELD_TIMESTAMP].desc(), c.id.desc())
        )
        with self._snapshot_lock:
            try:
                with self._engine.begin() as conn:
                    rows = conn.execute(stmt).mappings().all()
            except SQLAlchemyError as exc:
                raise from_db_error(exc) from exc
            version = self._hub.next_version()
        return [Entry.from_record(row["id"], row) for row in rows], version

    def _publish(self, owner_id: str) -> None:
        try:
            snapshot, version = self._read_snapshot(owner_id)
        except JournalError as exc:
            self._hub.fail(owner_id, exc)
            return
        self._hub.publish(owner_id, snapshot, only_if_changed=True, version=version)


def build_entry_store_gateway(
    *,
    backend: str = "memory",
    engine: Optional[Engine] = None,
    collection: str = JOURNAL_COLLECTION,
    auth: Optional[CurrentUserSource] = None,
    poll_interval_seconds: float = 0.0,
) -> EntryStoreGateway:
    """Factory that returns the configured entry store implementation."""

    if backend == "sql":
        if engine is None:
            raise ValueError("an engine is required for the sql entry store")
        return SqlEntryStoreGateway(
            engine,
            collection=collection,
            auth=auth,
            poll_interval_seconds=poll_interval_seconds,
        )
    return InMemoryEntryStoreGateway(auth=auth)
