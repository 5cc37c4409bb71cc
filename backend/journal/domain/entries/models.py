"""Journal entry data model and its persisted record shape."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "DISPLAY_DATE_FORMAT",
    "Entry",
    "EntryRecord",
    "FIELD_BODY",
    "FIELD_OWNER_ID",
    "FIELD_TIMESTAMP",
    "FIELD_TITLE",
    "JOURNAL_COLLECTION",
    "now_ms",
]

JOURNAL_COLLECTION = "journalEntries"
FIELD_TITLE = "title"
FIELD_BODY = "content"
FIELD_TIMESTAMP = "timestamp"
FIELD_OWNER_ID = "userId"
DISPLAY_DATE_FORMAT = "%d %b %Y"


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return int(time.time() * 1000)


class EntryRecord(BaseModel):
    """Schema-checked view of a stored entry document.

    Each field has an explicit default; a missing or wrong-typed value in the
    stored document decodes to that default instead of failing.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    title: str = Field(default="", alias=FIELD_TITLE)
    body: str = Field(default="", alias=FIELD_BODY)
    timestamp: int = Field(default_factory=now_ms, alias=FIELD_TIMESTAMP)
    owner_id: str = Field(default="", alias=FIELD_OWNER_ID)

    @field_validator("title", "body", "owner_id", mode="before")
    @classmethod
    def _text_or_default(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @field_validator("timestamp", mode="before")
    @classmethod
    def _millis_or_now(cls, value: Any) -> int:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return now_ms()
        return int(value)


@dataclass(frozen=True)
class Entry:
    """One journal entry as seen by the client."""

    id: str = ""
    title: str = ""
    body: str = ""
    owner_id: str = ""
    created_at: int = 0

    @property
    def is_persisted(self) -> bool:
        return bool(self.id)

    @classmethod
    def from_record(cls, entry_id: str, data: Mapping[str, Any] | None) -> "Entry":
        """Decode a stored document; the id comes from the document key."""

        record = EntryRecord.model_validate(dict(data or {}))
        return cls(
            id=entry_id,
            title=record.title,
            body=record.body,
            owner_id=record.owner_id,
            created_at=record.timestamp,
        )

    def to_record(self) -> Dict[str, Any]:
        """Encode for storage. The id is the document key and is not included."""

        return {
            FIELD_TITLE: self.title,
            FIELD_BODY: self.body,
            FIELD_TIMESTAMP: self.created_at,
            FIELD_OWNER_ID: self.owner_id,
        }

    def formatted_date(self) -> str:
        moment = datetime.fromtimestamp(self.created_at / 1000, tz=timezone.utc)
        return moment.strftime(DISPLAY_DATE_FORMAT)
