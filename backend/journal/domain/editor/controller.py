"""Create/edit/delete form controller for a single journal entry."""

from __future__ import annotations

from dataclasses import dataclass, replace
from threading import RLock
from typing import Optional

from ...infra.logging import get_logger
from ...infra.metrics import MetricsClient, get_metrics_client
from ..auth.gateway import AuthGateway
from ..entries.models import Entry
from ..entries.repository import JournalRepository
from ..errors import (
    EmptyTitle,
    InvalidArgument,
    JournalError,
    NotFound,
    NotSignedIn,
    describe_error,
)

__all__ = ["EditorState", "EntryEditor"]

logger = get_logger(__name__)

SAVED_MESSAGE = "Entry saved!"
UPDATED_MESSAGE = "Entry updated!"
DELETED_MESSAGE = "Entry deleted."


@dataclass(frozen=True)
class EditorState:
    """Draft fields plus the flags a form needs to render."""

    entry_id: Optional[str] = None
    title: str = ""
    body: str = ""
    is_loading: bool = False
    is_saving: bool = False
    show_title_error: bool = False
    message: Optional[str] = None
    error: Optional[JournalError] = None
    close_requested: bool = False

    @property
    def is_edit_mode(self) -> bool:
        return bool(self.entry_id)


class EntryEditor:
    """Validates and submits one create, update or delete request at a time.

    Writes go straight to the repository; the resulting change reaches the
    list through the sync core's live query, never through this controller.
    On failure the draft is left untouched so the user can retry.
    """

    def __init__(
        self,
        repository: JournalRepository,
        auth: AuthGateway,
        *,
        metrics: MetricsClient | None = None,
    ) -> None:
        self._repository = repository
        self._auth = auth
        self._metrics = metrics or get_metrics_client()
        self._lock = RLock()
        self._state = EditorState()
        self._original: Optional[Entry] = None

    @classmethod
    def for_edit(
        cls,
        repository: JournalRepository,
        auth: AuthGateway,
        entry_id: str,
        *,
        metrics: MetricsClient | None = None,
    ) -> "EntryEditor":
        editor = cls(repository, auth, metrics=metrics)
        editor.load_for_edit(entry_id)
        return editor

    @property
    def state(self) -> EditorState:
        return self._state

    def set_title(self, text: str) -> None:
        self._update(title=text, show_title_error=False)

    def set_body(self, text: str) -> None:
        self._update(body=text)

    def load_for_edit(self, entry_id: str) -> EditorState:
        # Edit mode only survives a successful load.
        self._original = None
        self._update(entry_id=entry_id, is_loading=True, message=None, error=None)
        owner_id = self._auth.current_user_id()
        if owner_id is None:
            return self._fail(NotSignedIn(), is_loading=False, entry_id=None)
        try:
            entries = self._repository.first_snapshot(owner_id)
        except JournalError as exc:
            return self._fail(exc, is_loading=False, entry_id=None)
        match = next((entry for entry in entries if entry.id == entry_id), None)
        if match is None:
            return self._fail(
                NotFound(details={"entry_id": entry_id}), is_loading=False, entry_id=None
            )
        self._original = match
        return self._update(title=match.title, body=match.body, is_loading=False)

    def save(self) -> EditorState:
        current = self._state
        title = current.title.strip()
        if not title:
            self._metrics.increment("journal_editor_validation_failures_total")
            return self._update(show_title_error=True, message=None, error=EmptyTitle())

        owner_id = self._auth.current_user_id()
        if owner_id is None:
            error = NotSignedIn()
            return self._update(message=describe_error(error), error=error)

        self._update(is_saving=True, message=None, error=None, close_requested=False)
        body = current.body.strip()
        try:
            if current.is_edit_mode:
                base = self._original or Entry(id=current.entry_id or "")
                saved = replace(base, title=title, body=body, owner_id=owner_id)
                self._repository.update_entry(owner_id, saved)
                message = UPDATED_MESSAGE
            else:
                saved = self._repository.add_entry(
                    owner_id, Entry(title=title, body=body, owner_id=owner_id)
                )
                logger.info("journal_editor_created", extra={"entry_id": saved.id})
                message = SAVED_MESSAGE
        except JournalError as exc:
            return self._fail(exc, is_saving=False)
        # A saved draft keeps editing the stored entry.
        self._original = saved
        return self._update(
            entry_id=saved.id,
            is_saving=False,
            message=message,
            close_requested=True,
        )

    def delete(self) -> EditorState:
        current = self._state
        if not current.is_edit_mode:
            return self._fail(InvalidArgument("Only saved entries can be deleted."))
        self._update(is_saving=True, message=None, error=None, close_requested=False)
        try:
            self._repository.delete_entry(current.entry_id or "")
        except JournalError as exc:
            return self._fail(exc, is_saving=False)
        return self._update(is_saving=False, message=DELETED_MESSAGE, close_requested=True)

    def clear_message(self) -> None:
        self._update(message=None, error=None)

    def consume_close(self) -> None:
        self._update(close_requested=False)

    def _fail(self, error: JournalError, **changes) -> EditorState:
        self._metrics.increment("journal_editor_failures_total")
        logger.warning(
            "journal_editor_failed",
            extra={"entry_id": self._state.entry_id, "error_code": error.error_code},
        )
        return self._update(message=describe_error(error), error=error, **changes)

    def _update(self, **changes) -> EditorState:
        with self._lock:
            self._state = replace(self._state, **changes)
            return self._state
