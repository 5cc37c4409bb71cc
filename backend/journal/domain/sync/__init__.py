"""Real-time journal sync package."""

from .core import SIGNED_OUT_MESSAGE, JournalSync
from .states import JournalUiState, SyncStatus

__all__ = ["JournalSync", "JournalUiState", "SIGNED_OUT_MESSAGE", "SyncStatus"]
