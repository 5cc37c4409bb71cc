"""Journal entry endpoints: published sync state plus editor-driven writes."""

from __future__ import annotations

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Path, status
from pydantic import BaseModel, Field

from ...domain.editor import EditorState, EntryEditor
from ...domain.entries import Entry
from ...domain.errors import JournalError
from ...domain.sync import JournalUiState
from ...infra.logging import get_logger
from ...services import JournalServices
from ..dependencies import get_current_user_id, get_services, journal_http_error

router = APIRouter(prefix="/api/entries", tags=["entries"])
logger = get_logger(__name__)

MAX_TITLE_LENGTH = 200
MAX_BODY_LENGTH = 20_000
EntryId = Annotated[str, Path(..., min_length=1, max_length=64)]


class EntryWriteRequest(BaseModel):
    title: str = Field(default="", max_length=MAX_TITLE_LENGTH)
    body: str = Field(default="", max_length=MAX_BODY_LENGTH)


class EntryResponse(BaseModel):
    id: str
    title: str
    body: str
    owner_id: str
    created_at: int
    display_date: str


class JournalStateResponse(BaseModel):
    status: str
    user_id: Optional[str] = None
    is_loading: bool
    message: Optional[str] = None
    error_code: Optional[str] = None
    entries: List[EntryResponse] = Field(default_factory=list)


class EntryWriteResponse(BaseModel):
    entry_id: Optional[str] = None
    message: Optional[str] = None


@router.get("", response_model=JournalStateResponse, summary="Published journal state")
def get_journal_state(
    services: JournalServices = Depends(get_services),
) -> JournalStateResponse:
    return _serialize_state(services.sync.state)


@router.post(
    "/message/ack",
    response_model=JournalStateResponse,
    summary="Dismiss the current journal message",
)
def acknowledge_message(
    services: JournalServices = Depends(get_services),
) -> JournalStateResponse:
    services.sync.clear_message()
    return _serialize_state(services.sync.state)


@router.post(
    "",
    response_model=EntryWriteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an entry",
)
def create_entry(
    payload: EntryWriteRequest,
    services: JournalServices = Depends(get_services),
) -> EntryWriteResponse:
    editor = services.new_editor()
    editor.set_title(payload.title)
    editor.set_body(payload.body)
    return _finish("create", editor.save(), services)


@router.get("/{entry_id}", response_model=EntryResponse, summary="Retrieve one entry")
def get_entry(
    entry_id: EntryId,
    owner_id: str = Depends(get_current_user_id),
    services: JournalServices = Depends(get_services),
) -> EntryResponse:
    try:
        entry = services.repository.get_entry(owner_id, entry_id)
    except JournalError as exc:
        raise journal_http_error(exc) from exc
    return _serialize_entry(entry)


@router.put(
    "/{entry_id}",
    response_model=EntryWriteResponse,
    dependencies=[Depends(get_current_user_id)],
    summary="Update an entry",
)
def update_entry(
    entry_id: EntryId,
    payload: EntryWriteRequest,
    services: JournalServices = Depends(get_services),
) -> EntryWriteResponse:
    editor = _load_editor(services, entry_id)
    editor.set_title(payload.title)
    editor.set_body(payload.body)
    return _finish("update", editor.save(), services)


@router.delete(
    "/{entry_id}",
    response_model=EntryWriteResponse,
    dependencies=[Depends(get_current_user_id)],
    summary="Delete an entry",
)
def delete_entry(
    entry_id: EntryId,
    services: JournalServices = Depends(get_services),
) -> EntryWriteResponse:
    editor = _load_editor(services, entry_id)
    return _finish("delete", editor.delete(), services)


def _load_editor(services: JournalServices, entry_id: str) -> EntryEditor:
    editor = EntryEditor.for_edit(
        services.repository, services.auth, entry_id, metrics=services.metrics
    )
    if editor.state.error is not None:
        raise journal_http_error(editor.state.error)
    return editor


def _finish(
    action: str, state: EditorState, services: JournalServices
) -> EntryWriteResponse:
    if state.error is not None:
        services.metrics.increment(f"entry_{action}_failed_total")
        raise journal_http_error(state.error)
    services.metrics.increment(f"entry_{action}_success_total")
    logger.info(
        "entry_write_applied",
        extra={"action": action, "entry_id": state.entry_id},
    )
    return EntryWriteResponse(entry_id=state.entry_id, message=state.message)


def _serialize_entry(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        title=entry.title,
        body=entry.body,
        owner_id=entry.owner_id,
        created_at=entry.created_at,
        display_date=entry.formatted_date(),
    )


def _serialize_state(state: JournalUiState) -> JournalStateResponse:
    return JournalStateResponse(
        status=state.status.value,
        user_id=state.user_id,
        is_loading=state.is_loading,
        message=state.message,
        error_code=state.error.error_code if state.error else None,
        entries=[_serialize_entry(entry) for entry in state.entries],
    )
