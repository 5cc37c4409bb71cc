"""Tests for the entry editing controller."""

from __future__ import annotations

import pytest

from backend.journal.domain.editor import EntryEditor
from backend.journal.domain.entries import Entry
from backend.journal.domain.errors import (
    EmptyTitle,
    InvalidArgument,
    NetworkUnavailable,
    NotFound,
    NotSignedIn,
    PermissionDenied,
)
from backend.journal.infra.metrics import InMemoryMetricsClient
from tests.helpers.fakes import FakeAuth, FakeRepository

pytestmark = [pytest.mark.editor]

STORED = Entry(
    id="e1", title="Old title", body="Old body", owner_id="alice", created_at=1_000
)


def _editor(user_id="alice", entries=None):
    repository = FakeRepository(entries=list(entries or []))
    auth = FakeAuth(user_id)
    editor = EntryEditor(repository, auth, metrics=InMemoryMetricsClient())
    return editor, repository


def test_blank_title_is_rejected_without_network_call():
    editor, repository = _editor()
    editor.set_title("   ")
    editor.set_body("body")

    state = editor.save()

    assert state.show_title_error is True
    assert isinstance(state.error, EmptyTitle)
    assert state.close_requested is False
    assert repository.writes == []


def test_set_title_clears_title_error():
    editor, _ = _editor()
    editor.save()

    editor.set_title("Now titled")

    assert editor.state.show_title_error is False


def test_save_requires_signed_in_user():
    editor, repository = _editor(user_id=None)
    editor.set_title("Title")

    state = editor.save()

    assert isinstance(state.error, NotSignedIn)
    assert state.message == "Sign in to save your thoughts."
    assert repository.writes == []


def test_save_creates_entry_with_trimmed_fields():
    editor, repository = _editor()
    editor.set_title("  Hello  ")
    editor.set_body("  world \n")

    state = editor.save()

    action, entry = repository.writes[0]
    assert action == "add"
    assert entry.title == "Hello"
    assert entry.body == "world"
    assert entry.owner_id == "alice"
    assert entry.id == ""
    assert state.message == "Entry saved!"
    assert state.close_requested is True
    assert state.is_saving is False
    assert state.entry_id == "entry-1"


def test_load_for_edit_fills_draft_from_first_snapshot():
    editor, repository = _editor(entries=[STORED])

    state = editor.load_for_edit("e1")

    assert state.is_edit_mode is True
    assert state.title == "Old title"
    assert state.body == "Old body"
    assert state.is_loading is False
    assert ("first_snapshot", "alice") in repository.calls


def test_load_for_edit_reports_missing_entry():
    editor, _ = _editor(entries=[STORED])

    state = editor.load_for_edit("missing")

    assert isinstance(state.error, NotFound)
    assert state.message == NotFound.default_message
    assert state.is_loading is False


def test_load_for_edit_surfaces_snapshot_failure():
    editor, repository = _editor(entries=[STORED])
    repository.snapshot_error = NetworkUnavailable()

    state = editor.load_for_edit("e1")

    assert isinstance(state.error, NetworkUnavailable)


def test_update_keeps_original_id_and_created_at():
    repository = FakeRepository(entries=[STORED])
    editor = EntryEditor.for_edit(
        repository, FakeAuth("alice"), "e1", metrics=InMemoryMetricsClient()
    )
    editor.set_title("New title")
    editor.set_body("New body")

    state = editor.save()

    action, entry = repository.writes[0]
    assert action == "update"
    assert entry.id == "e1"
    assert entry.created_at == 1_000
    assert entry.title == "New title"
    assert entry.body == "New body"
    assert state.message == "Entry updated!"
    assert state.close_requested is True


def test_failed_save_keeps_draft():
    editor, repository = _editor()
    repository.write_error = PermissionDenied()
    editor.set_title("Draft")
    editor.set_body("Keep me")

    state = editor.save()

    assert isinstance(state.error, PermissionDenied)
    assert state.message == PermissionDenied.default_message
    assert state.title == "Draft"
    assert state.body == "Keep me"
    assert state.is_saving is False
    assert state.close_requested is False


def test_delete_outside_edit_mode_is_invalid():
    editor, repository = _editor()

    state = editor.delete()

    assert isinstance(state.error, InvalidArgument)
    assert repository.writes == []


def test_failed_load_leaves_edit_mode_so_delete_is_refused():
    editor, repository = _editor(entries=[STORED])
    loaded = editor.load_for_edit("missing")

    state = editor.delete()

    assert loaded.entry_id is None
    assert loaded.is_edit_mode is False
    assert isinstance(state.error, InvalidArgument)
    assert state.message != "Entry deleted."
    assert repository.writes == []


def test_delete_in_edit_mode_removes_entry():
    editor, repository = _editor(entries=[STORED])
    editor.load_for_edit("e1")

    state = editor.delete()

    assert repository.writes == [("delete", "e1")]
    assert state.close_requested is True
    assert state.error is None


def test_clear_message_and_consume_close():
    editor, _ = _editor()
    editor.set_title("Title")
    editor.save()

    editor.clear_message()
    editor.consume_close()

    assert editor.state.message is None
    assert editor.state.error is None
    assert editor.state.close_requested is False
