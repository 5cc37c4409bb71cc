"""Seed script for the journal tables.

Creates a demo account and a handful of entries so a local presentation
layer has something to render without typing them in first.
"""

from __future__ import annotations

from typing import List

from backend.journal.config import load_settings
from backend.journal.domain.auth import LocalAuthGateway, SqlCredentialStore
from backend.journal.domain.entries import Entry, SqlEntryStoreGateway, now_ms
from backend.journal.domain.errors import EmailAlreadyInUse
from backend.journal.infra.db import build_engine

DEMO_EMAIL = "demo@journal.local"
DEMO_PASSWORD = "journal-demo"
DAY_MS = 24 * 60 * 60 * 1000


def build_seed_entries(owner_id: str, timestamp: int) -> List[Entry]:
    """Return static seed entries, newest first."""

    return [
        Entry(
            id="seed-entry-0001",
            title="Morning pages",
            body="Slept well. Planning to finish the reading list this week.",
            owner_id=owner_id,
            created_at=timestamp,
        ),
        Entry(
            id="seed-entry-0002",
            title="Walk by the river",
            body="Cold but bright. Saw herons near the bridge.",
            owner_id=owner_id,
            created_at=timestamp - DAY_MS,
        ),
        Entry(
            id="seed-entry-0003",
            title="First entry",
            body="Trying out the journal.",
            owner_id=owner_id,
            created_at=timestamp - 2 * DAY_MS,
        ),
    ]


def seed_entries() -> int:
    settings = load_settings()
    engine = build_engine(settings.database_url)
    credentials = SqlCredentialStore(engine)
    credentials.create_schema()
    gateway = SqlEntryStoreGateway(engine, collection=settings.store.collection)
    gateway.create_schema()

    auth = LocalAuthGateway(credentials)
    try:
        owner_id = auth.sign_up(DEMO_EMAIL, DEMO_PASSWORD)
    except EmailAlreadyInUse:
        owner_id = auth.sign_in(DEMO_EMAIL, DEMO_PASSWORD)

    records = build_seed_entries(owner_id, now_ms())
    for entry in records:
        gateway.create(owner_id, entry)
    gateway.close()
    engine.dispose()
    return len(records)


def main() -> None:
    inserted = seed_entries()
    print(f"Seeded {inserted} journal entries for {DEMO_EMAIL}.")


if __name__ == "__main__":
    main()
