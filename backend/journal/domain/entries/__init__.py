"""Journal entries domain package."""

from .gateway import (
    EntryStoreGateway,
    InMemoryEntryStoreGateway,
    SqlEntryStoreGateway,
    build_entries_table,
    build_entry_store_gateway,
)
from .models import Entry, EntryRecord, now_ms
from .repository import GatewayJournalRepository, JournalRepository

__all__ = [
    "Entry",
    "EntryRecord",
    "EntryStoreGateway",
    "GatewayJournalRepository",
    "InMemoryEntryStoreGateway",
    "JournalRepository",
    "SqlEntryStoreGateway",
    "build_entries_table",
    "build_entry_store_gateway",
    "now_ms",
]
