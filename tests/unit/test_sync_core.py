"""Tests for the real-time journal sync core."""

from __future__ import annotations

import pytest

from backend.journal.domain.entries import Entry
from backend.journal.domain.errors import NetworkUnavailable, PermissionDenied
from backend.journal.domain.sync import SIGNED_OUT_MESSAGE, JournalSync, SyncStatus
from backend.journal.infra.metrics import InMemoryMetricsClient
from tests.helpers.fakes import FakeAuth, FakeRepository

pytestmark = [pytest.mark.sync]


def _entry(entry_id: str, owner_id: str, created_at: int, title: str = "t") -> Entry:
    return Entry(
        id=entry_id, title=title, body="b", owner_id=owner_id, created_at=created_at
    )


def _build(user_id=None, **kwargs):
    auth = FakeAuth(user_id)
    repository = FakeRepository()
    metrics = InMemoryMetricsClient()
    sync = JournalSync(auth, repository, metrics=metrics, **kwargs)
    states = []
    sync.add_state_listener(states.append)
    return sync, auth, repository, metrics, states


def test_initial_state_is_loading_without_user():
    sync, _, repository, _, states = _build()

    assert sync.state.status is SyncStatus.LOADING
    assert sync.state.user_id is None
    assert sync.state.is_loading is True
    assert states == [sync.state]
    assert repository.subscriptions == []


def test_start_without_user_publishes_signed_out():
    sync, _, repository, _, states = _build()

    sync.start()

    state = sync.state
    assert state.status is SyncStatus.SIGNED_OUT
    assert state.entries == ()
    assert state.is_loading is False
    assert state.message == SIGNED_OUT_MESSAGE
    assert [item.status for item in states] == [SyncStatus.LOADING, SyncStatus.SIGNED_OUT]
    assert repository.subscriptions == []


def test_signed_in_user_moves_through_loading_to_ready():
    sync, _, repository, _, states = _build("alice")
    sync.start()

    assert sync.state.status is SyncStatus.LOADING
    assert sync.state.user_id == "alice"
    subscription = repository.subscriptions[0]
    assert subscription.owner_id == "alice"

    entries = [_entry("e2", "alice", 20), _entry("e1", "alice", 10)]
    subscription.emit(entries)

    state = sync.state
    assert state.status is SyncStatus.READY
    assert state.user_id == "alice"
    assert state.entries == tuple(entries)
    assert state.is_loading is False
    assert state.message is None
    assert states[-1] == state


def test_user_switch_publishes_loading_then_ready_and_keeps_one_subscription():
    sync, auth, repository, _, states = _build("alice")
    sync.start()
    first = repository.subscriptions[0]
    first.emit([_entry("a1", "alice", 10)])

    auth.emit("bob")

    assert first.active is False
    assert sync.state.status is SyncStatus.LOADING
    assert sync.state.user_id == "bob"
    assert sync.state.entries == ()
    second = repository.subscriptions[1]
    second.emit([_entry("b1", "bob", 30)])

    observed = [(state.status, state.user_id) for state in states[1:]]
    assert observed == [
        (SyncStatus.LOADING, "alice"),
        (SyncStatus.READY, "alice"),
        (SyncStatus.LOADING, "bob"),
        (SyncStatus.READY, "bob"),
    ]
    assert [sub.owner_id for sub in repository.active_subscriptions] == ["bob"]
    assert sync.active_owner_id == "bob"


def test_late_snapshot_from_superseded_subscription_is_dropped():
    sync, auth, repository, _, states = _build("alice")
    sync.start()
    stale = repository.subscriptions[0]
    auth.emit("bob")
    repository.subscriptions[1].emit([_entry("b1", "bob", 30)])
    published = len(states)

    stale.emit([_entry("a1", "alice", 10)])
    stale.fail(NetworkUnavailable())

    assert len(states) == published
    assert sync.state.status is SyncStatus.READY
    assert [entry.owner_id for entry in sync.state.entries] == ["bob"]


def test_sign_out_releases_subscription_and_ignores_late_events():
    sync, auth, repository, metrics, _ = _build("alice")
    sync.start()
    subscription = repository.subscriptions[0]
    subscription.emit([_entry("a1", "alice", 10)])

    auth.emit(None)
    subscription.emit([_entry("a2", "alice", 20)])

    assert subscription.active is False
    assert repository.active_subscriptions == []
    assert sync.state.status is SyncStatus.SIGNED_OUT
    assert sync.state.entries == ()
    assert sync.active_owner_id is None
    assert metrics.gauges["journal_entry_subscriptions_active"] == 0


def test_stream_failure_keeps_last_good_entries():
    sync, _, repository, metrics, _ = _build("alice")
    sync.start()
    subscription = repository.subscriptions[0]
    entries = [_entry("a1", "alice", 10)]
    subscription.emit(entries)

    subscription.fail(NetworkUnavailable())

    state = sync.state
    assert state.status is SyncStatus.FAILED
    assert state.user_id == "alice"
    assert state.entries == tuple(entries)
    assert state.is_loading is False
    assert state.message == NetworkUnavailable.default_message
    assert isinstance(state.error, NetworkUnavailable)
    assert metrics.counters["journal_entry_stream_failures_total"] == 1


def test_retry_reopens_query_after_failure():
    sync, _, repository, metrics, _ = _build("alice")
    sync.start()
    repository.subscriptions[0].fail(PermissionDenied())

    sync.retry()

    assert len(repository.subscriptions) == 2
    assert repository.subscriptions[1].owner_id == "alice"
    assert sync.state.status is SyncStatus.LOADING
    assert metrics.counters["journal_entry_subscriptions_opened_total"] == 2


def test_retry_is_noop_unless_failed():
    sync, _, repository, _, _ = _build("alice")
    sync.start()

    sync.retry()

    assert len(repository.subscriptions) == 1


def test_observe_raising_marks_state_failed():
    class RefusingRepository(FakeRepository):
        def observe_entries(self, owner_id, on_next, on_error=None):
            raise NetworkUnavailable()

    auth = FakeAuth("alice")
    sync = JournalSync(auth, RefusingRepository(), metrics=InMemoryMetricsClient())

    sync.start()

    assert sync.state.status is SyncStatus.FAILED
    assert sync.state.message == NetworkUnavailable.default_message


def test_clear_message_keeps_status_and_entries():
    sync, _, _, _, states = _build()
    sync.start()

    sync.clear_message()
    published = len(states)
    sync.clear_message()

    assert sync.state.status is SyncStatus.SIGNED_OUT
    assert sync.state.message is None
    assert len(states) == published


def test_close_cancels_everything_and_ignores_later_events():
    sync, auth, repository, _, _ = _build("alice")
    sync.start()
    subscription = repository.subscriptions[0]

    sync.close()
    auth.emit("bob")
    subscription.emit([_entry("a1", "alice", 10)])

    assert sync.closed is True
    assert subscription.active is False
    assert auth.active_listeners == 0
    assert len(repository.subscriptions) == 1
    assert sync.state.status is SyncStatus.LOADING
    with pytest.raises(RuntimeError):
        sync.start()


def test_context_manager_starts_and_closes():
    auth = FakeAuth("alice")
    repository = FakeRepository()

    with JournalSync(auth, repository, metrics=InMemoryMetricsClient()) as sync:
        assert len(repository.active_subscriptions) == 1

    assert sync.closed is True
    assert repository.active_subscriptions == []


def test_anonymous_sign_in_runs_when_enabled():
    sync, auth, repository, _, _ = _build(anonymous_sign_in=True)

    sync.start()

    assert auth.anonymous_calls == 1
    assert sync.state.user_id == "anon-test"
    assert repository.subscriptions[0].owner_id == "anon-test"


def test_anonymous_sign_in_failure_is_surfaced():
    sync, auth, repository, _, states = _build(anonymous_sign_in=True)
    auth.anonymous_error = NetworkUnavailable()

    sync.start()

    assert any(
        state.error is not None and state.error.error_code == "network_unavailable"
        for state in states
    )
    assert sync.state.status is SyncStatus.SIGNED_OUT
    assert repository.subscriptions == []


def test_state_listener_receives_current_state_on_registration():
    sync, _, _, _, _ = _build("alice")
    sync.start()
    received = []

    subscription = sync.add_state_listener(received.append)

    assert received == [sync.state]
    subscription.cancel()
    assert subscription.active is False
