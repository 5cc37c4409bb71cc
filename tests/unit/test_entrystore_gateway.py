"""Tests for the entry store gateways and the repository on top of them."""

from __future__ import annotations

import threading

import pytest
from sqlalchemy import MetaData, insert
from sqlalchemy.exc import IntegrityError, OperationalError

from backend.journal.domain.entries import (
    Entry,
    GatewayJournalRepository,
    InMemoryEntryStoreGateway,
    SqlEntryStoreGateway,
    build_entries_table,
    build_entry_store_gateway,
)
from backend.journal.domain.errors import (
    InvalidArgument,
    NetworkUnavailable,
    NotFound,
    PermissionDenied,
    UnknownError,
    from_db_error,
)
from backend.journal.infra.db import build_engine
from tests.helpers.fakes import FakeAuth

pytestmark = [pytest.mark.entries]


class Recorder:
    def __init__(self) -> None:
        self.snapshots: list[list[Entry]] = []
        self.errors: list[Exception] = []

    def on_next(self, entries):
        self.snapshots.append(list(entries))

    def on_error(self, error):
        self.errors.append(error)

    @property
    def latest(self) -> list[Entry]:
        return self.snapshots[-1]


def _sequential_ids():
    counter = iter(range(1, 1000))
    return lambda: f"id-{next(counter):03d}"


@pytest.fixture
def sql_gateway():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    gateway = SqlEntryStoreGateway(engine, id_factory=_sequential_ids())
    gateway.create_schema()
    yield gateway
    gateway.close()
    engine.dispose()


@pytest.fixture
def memory_gateway():
    return InMemoryEntryStoreGateway(id_factory=_sequential_ids())


@pytest.fixture(params=["memory", "sql"])
def gateway(request):
    return request.getfixturevalue(f"{request.param}_gateway")


def test_observe_emits_initial_snapshot(gateway):
    recorder = Recorder()

    subscription = gateway.observe("alice", recorder.on_next, recorder.on_error)

    assert recorder.snapshots == [[]]
    assert subscription.active is True
    assert gateway.listener_count("alice") == 1


def test_create_assigns_id_owner_and_timestamp(gateway):
    created = gateway.create("alice", Entry(title="Hello", body="World"))

    assert created.id == "id-001"
    assert created.owner_id == "alice"
    assert created.created_at > 0
    assert gateway.get("alice", created.id) == created


def test_create_then_observe_round_trip(gateway):
    recorder = Recorder()
    gateway.observe("alice", recorder.on_next, recorder.on_error)

    created = gateway.create("alice", Entry(title="Hello", body="World", created_at=10))

    assert recorder.latest == [created]


def test_snapshots_are_newest_first_and_scoped_to_owner(gateway):
    gateway.create("alice", Entry(title="old", created_at=10))
    gateway.create("alice", Entry(title="new", created_at=30))
    gateway.create("bob", Entry(title="other", created_at=20))
    recorder = Recorder()

    gateway.observe("alice", recorder.on_next)

    assert [entry.title for entry in recorder.latest] == ["new", "old"]
    assert {entry.owner_id for entry in recorder.latest} == {"alice"}


def test_equal_timestamps_order_by_id(gateway):
    gateway.create("alice", Entry(id="a", title="a", created_at=10))
    gateway.create("alice", Entry(id="b", title="b", created_at=10))
    recorder = Recorder()

    gateway.observe("alice", recorder.on_next)

    assert [entry.id for entry in recorder.latest] == ["b", "a"]


def test_update_keeps_created_at_and_position(gateway):
    first = gateway.create("alice", Entry(title="first", created_at=10))
    gateway.create("alice", Entry(title="second", created_at=20))
    recorder = Recorder()
    gateway.observe("alice", recorder.on_next)

    gateway.update("alice", Entry(id=first.id, title="edited", body="x", created_at=0))

    assert [entry.title for entry in recorder.latest] == ["second", "edited"]
    assert recorder.latest[1].created_at == 10


def test_update_requires_id(gateway):
    with pytest.raises(InvalidArgument):
        gateway.update("alice", Entry(title="no id"))


def test_update_missing_entry_raises_not_found(gateway):
    with pytest.raises(NotFound):
        gateway.update("alice", Entry(id="missing", title="x", created_at=1))


def test_update_of_foreign_entry_is_denied(gateway):
    created = gateway.create("alice", Entry(title="mine", created_at=1))

    with pytest.raises(PermissionDenied):
        gateway.update("bob", Entry(id=created.id, title="hijack", created_at=1))


def test_delete_is_idempotent(gateway):
    created = gateway.create("alice", Entry(title="bye", created_at=1))
    recorder = Recorder()
    gateway.observe("alice", recorder.on_next)

    gateway.delete(created.id)
    gateway.delete(created.id)

    assert recorder.latest == []
    with pytest.raises(NotFound):
        gateway.get("alice", created.id)


def test_get_hides_foreign_entries(gateway):
    created = gateway.create("alice", Entry(title="secret", created_at=1))

    with pytest.raises(NotFound):
        gateway.get("bob", created.id)


def test_cancel_detaches_listener(gateway):
    recorder = Recorder()
    subscription = gateway.observe("alice", recorder.on_next)

    subscription.cancel()
    subscription.cancel()
    gateway.create("alice", Entry(title="after", created_at=1))

    assert subscription.active is False
    assert gateway.listener_count() == 0
    assert recorder.snapshots == [[]]


def test_access_rule_denies_other_users():
    auth = FakeAuth("alice")
    gateway = InMemoryEntryStoreGateway(auth=auth)
    recorder = Recorder()

    subscription = gateway.observe("bob", recorder.on_next, recorder.on_error)

    assert isinstance(recorder.errors[0], PermissionDenied)
    assert recorder.snapshots == []
    assert subscription.active is False
    assert gateway.listener_count() == 0
    with pytest.raises(PermissionDenied):
        gateway.create("bob", Entry(title="x"))


def test_interrupt_fails_open_queries():
    gateway = InMemoryEntryStoreGateway()
    recorder = Recorder()
    subscription = gateway.observe("alice", recorder.on_next, recorder.on_error)

    failed = gateway.interrupt("alice")

    assert failed == 1
    assert isinstance(recorder.errors[0], NetworkUnavailable)
    assert subscription.active is False


def test_put_document_reaches_listeners_with_defaults():
    gateway = InMemoryEntryStoreGateway()
    recorder = Recorder()
    gateway.observe("alice", recorder.on_next)

    gateway.put_document("raw", {"title": 5, "userId": "alice", "timestamp": 7})

    assert recorder.latest == [Entry(id="raw", title="", body="", owner_id="alice", created_at=7)]


def test_sql_refresh_picks_up_external_writes(sql_gateway):
    recorder = Recorder()
    sql_gateway.observe("alice", recorder.on_next)
    table = sql_gateway._entries
    with sql_gateway._engine.begin() as conn:
        conn.execute(
            insert(table).values(
                id="external", title="t", content="c", timestamp=5, userId="alice"
            )
        )

    assert sql_gateway.refresh() == 1
    assert sql_gateway.refresh() == 0
    assert [entry.id for entry in recorder.latest] == ["external"]
    assert len(recorder.snapshots) == 2


def test_sql_gateway_accepts_shared_table():
    engine = build_engine("sqlite+pysqlite:///:memory:")
    metadata = MetaData()
    table = build_entries_table(metadata, "customEntries")
    gateway = SqlEntryStoreGateway(engine, table=table)
    gateway.create_schema()

    created = gateway.create("alice", Entry(title="x", created_at=1))

    assert gateway.get("alice", created.id).title == "x"
    engine.dispose()


def test_factory_requires_engine_for_sql():
    with pytest.raises(ValueError):
        build_entry_store_gateway(backend="sql")
    assert isinstance(build_entry_store_gateway(), InMemoryEntryStoreGateway)


def test_from_db_error_maps_operational_errors():
    error = OperationalError("SELECT 1", {}, Exception("connection refused"))

    assert isinstance(from_db_error(error), NetworkUnavailable)


def test_first_snapshot_returns_and_releases(memory_gateway):
    memory_gateway.create("alice", Entry(title="x", created_at=1))
    repository = GatewayJournalRepository(memory_gateway, snapshot_timeout_seconds=1)

    entries = repository.first_snapshot("alice")

    assert [entry.title for entry in entries] == ["x"]
    assert memory_gateway.listener_count() == 0


def test_first_snapshot_raises_stream_error():
    gateway = InMemoryEntryStoreGateway(auth=FakeAuth("alice"))
    repository = GatewayJournalRepository(gateway, snapshot_timeout_seconds=1)

    with pytest.raises(PermissionDenied):
        repository.first_snapshot("bob")


def test_first_snapshot_times_out():
    class SilentGateway(InMemoryEntryStoreGateway):
        def observe(self, owner_id, on_next, on_error=None):
            return self._hub.register(owner_id, on_next, on_error)

    gateway = SilentGateway()
    repository = GatewayJournalRepository(gateway, snapshot_timeout_seconds=0.01)

    with pytest.raises(NetworkUnavailable):
        repository.first_snapshot("alice")
    assert gateway.listener_count() == 0


class NoLiveQueryGateway(InMemoryEntryStoreGateway):
    def observe(self, owner_id, on_next, on_error=None):
        raise AssertionError("point lookups must not open a live query")


def test_get_entry_is_a_point_lookup():
    gateway = NoLiveQueryGateway()
    created = gateway.create("alice", Entry(title="x", created_at=1))
    foreign = gateway.create("bob", Entry(title="y", created_at=2))
    repository = GatewayJournalRepository(gateway)

    assert repository.get_entry("alice", created.id) == created
    with pytest.raises(NotFound):
        repository.get_entry("alice", "missing")
    with pytest.raises(NotFound):
        repository.get_entry("alice", foreign.id)


def test_unknown_db_errors_map_to_unknown():
    error = IntegrityError("INSERT", {}, Exception("duplicate"))

    assert isinstance(from_db_error(error), UnknownError)


def test_overlapping_writes_deliver_the_newest_snapshot_last(
    memory_gateway, monkeypatch
):
    recorder = Recorder()
    memory_gateway.observe("alice", recorder.on_next, recorder.on_error)
    hub = memory_gateway._hub
    publish = hub.publish
    first_read = threading.Event()
    second_done = threading.Event()

    def held_publish(key, value, **kwargs):
        # The first writer has already read its snapshot; hold it back.
        if threading.current_thread().name == "writer-a":
            first_read.set()
            second_done.wait(timeout=5)
        return publish(key, value, **kwargs)

    monkeypatch.setattr(hub, "publish", held_publish)
    writer = threading.Thread(
        target=memory_gateway.create,
        args=("alice", Entry(title="A", created_at=1)),
        name="writer-a",
    )
    writer.start()
    assert first_read.wait(timeout=5)
    memory_gateway.create("alice", Entry(title="B", created_at=2))
    second_done.set()
    writer.join(timeout=5)

    assert not writer.is_alive()
    assert [entry.title for entry in recorder.latest] == ["B", "A"]
    assert [[entry.title for entry in snapshot] for snapshot in recorder.snapshots] == [
        [],
        ["B", "A"],
    ]
