"""Database connection helpers."""

from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

__all__ = ["build_engine"]


def build_engine(database_url: str) -> Engine:
    """Create an engine for ``database_url``.

    In-memory sqlite URLs share one connection so every thread sees the same
    database.
    """

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
        )
    return create_engine(database_url, echo=False, future=True, pool_pre_ping=True)

