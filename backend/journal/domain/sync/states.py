"""Published state of the journal sync core."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

from ..entries.models import Entry
from ..errors import JournalError, describe_error

__all__ = ["JournalUiState", "SyncStatus"]


class SyncStatus(str, Enum):
    """States of the sync state machine."""

    SIGNED_OUT = "signed_out"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class JournalUiState:
    """Snapshot rendered by the presentation layer.

    ``entries`` are ordered newest first and always belong to ``user_id``.
    """

    status: SyncStatus = SyncStatus.LOADING
    user_id: Optional[str] = None
    entries: Tuple[Entry, ...] = ()
    is_loading: bool = True
    message: Optional[str] = None
    error: Optional[JournalError] = None

    @classmethod
    def signed_out(cls, message: Optional[str]) -> "JournalUiState":
        return cls(
            status=SyncStatus.SIGNED_OUT,
            user_id=None,
            entries=(),
            is_loading=False,
            message=message,
        )

    @classmethod
    def loading(cls, user_id: str) -> "JournalUiState":
        return cls(status=SyncStatus.LOADING, user_id=user_id, entries=(), is_loading=True)

    @classmethod
    def ready(cls, user_id: str, entries: Iterable[Entry]) -> "JournalUiState":
        return cls(
            status=SyncStatus.READY,
            user_id=user_id,
            entries=tuple(entries),
            is_loading=False,
        )

    def failed(self, error: JournalError) -> "JournalUiState":
        # Last good entries stay visible through a transient stream error.
        return replace(
            self,
            status=SyncStatus.FAILED,
            is_loading=False,
            message=describe_error(error),
            error=error,
        )

    def with_message(self, message: Optional[str], error: Optional[JournalError] = None) -> "JournalUiState":
        return replace(self, message=message, error=error)
