"""System health endpoints for frontend polling."""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...services import JournalServices
from ..dependencies import get_services

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/healthz")
def healthcheck(services: JournalServices = Depends(get_services)) -> dict[str, Any]:
    """Return coarse-grained backend readiness information."""

    settings = services.settings
    feature_flags: Dict[str, Any] = settings.features or {}

    return {
        "status": "ok",
        "environment": settings.environment,
        "runtimeShape": settings.runtime_shape,
        "entryStore": settings.store.backend,
        "authBackend": settings.auth.backend,
        "syncStatus": services.sync.state.status.value,
        "metrics": services.metrics.snapshot(),
        "featureFlags": feature_flags,
    }
