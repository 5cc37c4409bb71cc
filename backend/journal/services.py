"""Service container wiring gateways, repository and sync core from settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.engine import Engine

from .config import Settings
from .domain.auth import (
    CredentialStore,
    InMemoryCredentialStore,
    LocalAuthGateway,
    SignInController,
    SqlCredentialStore,
)
from .domain.editor import EntryEditor
from .domain.entries import (
    EntryStoreGateway,
    GatewayJournalRepository,
    SqlEntryStoreGateway,
    build_entry_store_gateway,
)
from .domain.sync import JournalSync
from .infra.db import build_engine
from .infra.logging import get_logger
from .infra.metrics import MetricsClient, get_metrics_client

__all__ = ["JournalServices", "build_services"]

logger = get_logger(__name__)


@dataclass
class JournalServices:
    """Every long-lived collaborator of one journal session."""

    settings: Settings
    auth: LocalAuthGateway
    gateway: EntryStoreGateway
    repository: GatewayJournalRepository
    sync: JournalSync
    metrics: MetricsClient
    engine: Optional[Engine] = None
    credentials: Optional[CredentialStore] = None
    _started: bool = field(default=False, repr=False)

    def start(self) -> None:
        if self._started:
            return
        if isinstance(self.credentials, SqlCredentialStore):
            self.credentials.create_schema()
        if isinstance(self.gateway, SqlEntryStoreGateway):
            self.gateway.create_schema()
            self.gateway.start_polling()
        self.sync.start()
        self._started = True
        logger.info(
            "journal_services_started",
            extra={
                "environment": self.settings.environment,
                "store_backend": self.settings.store.backend,
                "auth_backend": self.settings.auth.backend,
            },
        )

    def close(self) -> None:
        self.sync.close()
        close_gateway = getattr(self.gateway, "close", None)
        if close_gateway is not None:
            close_gateway()
        if self.engine is not None:
            self.engine.dispose()
        self._started = False
        logger.info("journal_services_closed")

    def new_editor(self) -> EntryEditor:
        return EntryEditor(self.repository, self.auth, metrics=self.metrics)

    def new_sign_in_controller(self) -> SignInController:
        return SignInController(
            self.auth, min_password_length=self.settings.auth.min_password_length
        )


def build_services(
    settings: Settings,
    *,
    engine: Optional[Engine] = None,
    metrics: MetricsClient | None = None,
) -> JournalServices:
    """Build the container; nothing touches the database until ``start()``."""

    metrics = metrics or get_metrics_client()
    needs_engine = "sql" in (settings.store.backend, settings.auth.backend)
    if needs_engine and engine is None:
        engine = build_engine(settings.database_url)

    if settings.auth.backend == "sql":
        credentials: CredentialStore = SqlCredentialStore(engine)
    else:
        credentials = InMemoryCredentialStore()
    auth = LocalAuthGateway(
        credentials,
        min_password_length=settings.auth.min_password_length,
        max_failed_attempts=settings.auth.max_failed_attempts,
        lockout_seconds=settings.auth.lockout_seconds,
    )
    gateway = build_entry_store_gateway(
        backend=settings.store.backend,
        engine=engine,
        collection=settings.store.collection,
        auth=auth,
        poll_interval_seconds=settings.store.poll_interval_seconds,
    )
    repository = GatewayJournalRepository(
        gateway, snapshot_timeout_seconds=settings.sync.snapshot_timeout_seconds
    )
    sync = JournalSync(
        auth,
        repository,
        anonymous_sign_in=settings.sync.anonymous_sign_in,
        metrics=metrics,
    )
    return JournalServices(
        settings=settings,
        auth=auth,
        gateway=gateway,
        repository=repository,
        sync=sync,
        metrics=metrics,
        engine=engine,
        credentials=credentials,
    )
