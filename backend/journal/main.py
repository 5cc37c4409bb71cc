"""FastAPI entrypoint for the journal client service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routers import auth, entries, health
from .config import Settings, load_settings
from .infra.logging import configure_logging
from .services import JournalServices, build_services


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[JournalServices] = None,
) -> FastAPI:
    """Instantiate the FastAPI app and register routers.

    Services are started when the application starts up and closed on
    shutdown, so importing this module never touches the database.
    """

    if services is not None:
        settings = services.settings
    settings = settings or load_settings()
    configure_logging(settings.logging)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        container = services or build_services(settings)
        container.start()
        application.state.services = container
        try:
            yield
        finally:
            container.close()

    application = FastAPI(title="Journal API", version="0.1.0", lifespan=lifespan)
    allowed_origins = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    for router in (health.router, auth.router, entries.router):
        application.include_router(router)
    return application


app = create_app()
