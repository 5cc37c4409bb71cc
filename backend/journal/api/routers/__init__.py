"""Router exports for FastAPI composition."""

from . import auth, entries, health

__all__ = ["auth", "entries", "health"]
