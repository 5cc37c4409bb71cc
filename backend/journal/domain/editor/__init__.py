"""Entry editing controller package."""

from .controller import EditorState, EntryEditor

__all__ = ["EditorState", "EntryEditor"]
