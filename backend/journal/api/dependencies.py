"""Shared API dependencies."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request

from ..domain.errors import JournalError, NotSignedIn
from ..services import JournalServices

__all__ = [
    "get_current_user_id",
    "get_services",
    "journal_http_error",
]


def get_services(request: Request) -> JournalServices:
    """Return the service container attached to the running application."""

    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("journal services are not initialised")
    return services


def get_current_user_id(services: JournalServices = Depends(get_services)) -> str:
    """Return the signed-in user or reject the request with 401."""

    user_id = services.auth.current_user_id()
    if user_id is None:
        raise journal_http_error(NotSignedIn())
    return user_id


def journal_http_error(exc: JournalError) -> HTTPException:
    return HTTPException(status_code=int(exc.status_code), detail=exc.to_dict())
