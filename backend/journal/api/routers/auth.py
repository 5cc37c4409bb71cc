"""Session endpoints backed by the local auth gateway."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from ...domain.auth import AuthFormState
from ...domain.auth.gateway import ANONYMOUS_PREFIX
from ...domain.errors import InvalidArgument, JournalError
from ...infra.logging import get_logger
from ...services import JournalServices
from ..dependencies import get_services, journal_http_error

router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = get_logger(__name__)


class CredentialsRequest(BaseModel):
    email: str = Field(default="", max_length=320)
    password: str = Field(default="", max_length=256)


class SessionResponse(BaseModel):
    user_id: Optional[str] = None
    signed_in: bool = False
    anonymous: bool = False
    message: Optional[str] = None


@router.get("/session", response_model=SessionResponse, summary="Current session")
def get_session(services: JournalServices = Depends(get_services)) -> SessionResponse:
    return _session(services.auth.current_user_id())


@router.post("/sign-in", response_model=SessionResponse, summary="Sign in")
def sign_in(
    payload: CredentialsRequest,
    services: JournalServices = Depends(get_services),
) -> SessionResponse:
    controller = services.new_sign_in_controller()
    controller.set_email(payload.email)
    controller.set_password(payload.password)
    return _finish("sign_in", controller.sign_in(), services)


@router.post(
    "/sign-up",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account and sign in",
)
def sign_up(
    payload: CredentialsRequest,
    services: JournalServices = Depends(get_services),
) -> SessionResponse:
    controller = services.new_sign_in_controller()
    controller.set_email(payload.email)
    controller.set_password(payload.password)
    return _finish("sign_up", controller.sign_up(), services)


@router.post("/anonymous", response_model=SessionResponse, summary="Sign in anonymously")
def sign_in_anonymously(
    services: JournalServices = Depends(get_services),
) -> SessionResponse:
    try:
        user_id = services.auth.sign_in_anonymously()
    except JournalError as exc:
        raise journal_http_error(exc) from exc
    return _session(user_id)


@router.post("/sign-out", response_model=SessionResponse, summary="Sign out")
def sign_out(services: JournalServices = Depends(get_services)) -> SessionResponse:
    services.auth.sign_out()
    return _session(None)


def _finish(
    action: str, state: AuthFormState, services: JournalServices
) -> SessionResponse:
    if state.email_error or state.password_error:
        services.metrics.increment("auth_form_rejected_total")
        fields = {
            name: value
            for name, value in (
                ("email", state.email_error),
                ("password", state.password_error),
            )
            if value
        }
        raise journal_http_error(
            InvalidArgument(
                next(iter(fields.values())),
                details={"fields": fields},
            )
        )
    if state.error is not None:
        services.metrics.increment("auth_request_failed_total")
        logger.info(
            "auth_request_failed",
            extra={"action": action, "error_code": state.error.error_code},
        )
        raise journal_http_error(state.error)
    response = _session(services.auth.current_user_id())
    response.message = state.message
    return response


def _session(user_id: Optional[str]) -> SessionResponse:
    return SessionResponse(
        user_id=user_id,
        signed_in=user_id is not None,
        anonymous=bool(user_id and user_id.startswith(ANONYMOUS_PREFIX)),
    )
