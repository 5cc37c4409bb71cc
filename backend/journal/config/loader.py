"""Profile-based configuration loader for the journal client service."""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_RUNTIME_SHAPE = "ShapeA_LocalDev"
DEFAULT_DATABASE_URL = "sqlite+pysqlite:///journal.db"
DEFAULT_COLLECTION = "journalEntries"
DEFAULT_STORE_PROFILE: dict[str, Any] = {
    "backend": "memory",
    "collection": DEFAULT_COLLECTION,
    "poll_interval_seconds": 0.0,
}
DEFAULT_AUTH_PROFILE: dict[str, Any] = {
    "backend": "memory",
    "min_password_length": 6,
    "max_failed_attempts": 5,
    "lockout_seconds": 60,
}
DEFAULT_SYNC_PROFILE: dict[str, Any] = {
    "snapshot_timeout_seconds": 10.0,
    "anonymous_sign_in": False,
}
DEFAULT_PROFILE_DICT: dict[str, Any] = {
    "environment": DEFAULT_ENVIRONMENT,
    "runtime_shape": DEFAULT_RUNTIME_SHAPE,
    "database": {"url": DEFAULT_DATABASE_URL},
    "store": DEFAULT_STORE_PROFILE,
    "auth": DEFAULT_AUTH_PROFILE,
    "sync": DEFAULT_SYNC_PROFILE,
    "logging": {"level": "INFO"},
}
CONFIG_PROFILE_ENV = "JOURNAL_CONFIG_PROFILE"
CONFIG_DIR_ENV = "JOURNAL_CONFIG_DIR"
DEFAULT_PROFILE = "dev"
DEFAULT_CONFIG_ROOT = Path(__file__).resolve().parents[3] / "config" / "profiles"
CONFIG_EXTENSIONS = (".yaml", ".yml")
STORE_BACKENDS = ("memory", "sql")


@dataclass
class StoreConfig:
    backend: str = "memory"
    collection: str = DEFAULT_COLLECTION
    poll_interval_seconds: float = 0.0


@dataclass
class AuthConfig:
    backend: str = "memory"
    min_password_length: int = 6
    max_failed_attempts: int = 5
    lockout_seconds: int = 60


@dataclass
class SyncConfig:
    snapshot_timeout_seconds: float | None = 10.0
    anonymous_sign_in: bool = False


@dataclass
class Settings:
    environment: str = DEFAULT_ENVIRONMENT
    runtime_shape: str = DEFAULT_RUNTIME_SHAPE
    database_url: str = DEFAULT_DATABASE_URL
    store: StoreConfig = field(default_factory=StoreConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    logging: dict[str, Any] = field(default_factory=dict)
    features: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)


def load_settings(
    profile: str | None = None, config_dir: str | Path | None = None
) -> Settings:
    """Load settings from the requested profile or fall back to defaults."""

    profile_name = profile or os.getenv(CONFIG_PROFILE_ENV, DEFAULT_PROFILE)
    config_root = Path(
        config_dir or os.getenv(CONFIG_DIR_ENV, DEFAULT_CONFIG_ROOT)
    ).expanduser()
    config_data = _load_profile_dict(profile_name, config_root)
    if not config_data:
        config_data = copy.deepcopy(DEFAULT_PROFILE_DICT)

    database_cfg = config_data.get("database") or {}
    database_url = os.getenv(
        "DATABASE_URL", database_cfg.get("url", DEFAULT_DATABASE_URL)
    )

    return Settings(
        environment=config_data.get("environment", DEFAULT_ENVIRONMENT),
        runtime_shape=config_data.get("runtime_shape", DEFAULT_RUNTIME_SHAPE),
        database_url=database_url,
        store=_build_store_config(config_data.get("store")),
        auth=_build_auth_config(config_data.get("auth")),
        sync=_build_sync_config(config_data.get("sync")),
        logging=config_data.get("logging") or {},
        features=config_data.get("features") or {},
        raw=config_data,
    )


def _load_profile_dict(profile_name: str, config_root: Path) -> dict[str, Any]:
    """Load the YAML profile if available, otherwise return an empty dict."""

    if not config_root.exists():
        return {}

    for extension in CONFIG_EXTENSIONS:
        candidate = config_root / f"{profile_name}{extension}"
        if not candidate.exists():
            continue
        try:
            with candidate.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise RuntimeError(
                f"Failed to parse config profile {candidate}: {exc}"
            ) from exc
        if not isinstance(loaded, dict):
            raise RuntimeError(
                f"Config profile {candidate} must be a mapping at the root"
            )
        return loaded

    return {}


def _build_store_config(store_cfg: dict[str, Any] | None) -> StoreConfig:
    store_cfg = store_cfg or DEFAULT_STORE_PROFILE
    backend = str(store_cfg.get("backend", DEFAULT_STORE_PROFILE["backend"]))
    if backend not in STORE_BACKENDS:
        raise RuntimeError(
            f"Unsupported store backend '{backend}'; expected one of {STORE_BACKENDS}"
        )
    return StoreConfig(
        backend=backend,
        collection=str(
            store_cfg.get("collection", DEFAULT_STORE_PROFILE["collection"])
        ),
        poll_interval_seconds=float(
            store_cfg.get(
                "poll_interval_seconds",
                DEFAULT_STORE_PROFILE["poll_interval_seconds"],
            )
            or 0.0
        ),
    )


def _build_auth_config(auth_cfg: dict[str, Any] | None) -> AuthConfig:
    auth_cfg = auth_cfg or DEFAULT_AUTH_PROFILE
    backend = str(auth_cfg.get("backend", DEFAULT_AUTH_PROFILE["backend"]))
    if backend not in STORE_BACKENDS:
        raise RuntimeError(
            f"Unsupported auth backend '{backend}'; expected one of {STORE_BACKENDS}"
        )
    return AuthConfig(
        backend=backend,
        min_password_length=int(
            auth_cfg.get(
                "min_password_length", DEFAULT_AUTH_PROFILE["min_password_length"]
            )
        ),
        max_failed_attempts=int(
            auth_cfg.get(
                "max_failed_attempts", DEFAULT_AUTH_PROFILE["max_failed_attempts"]
            )
        ),
        lockout_seconds=int(
            auth_cfg.get("lockout_seconds", DEFAULT_AUTH_PROFILE["lockout_seconds"])
        ),
    )


def _build_sync_config(sync_cfg: dict[str, Any] | None) -> SyncConfig:
    sync_cfg = sync_cfg or DEFAULT_SYNC_PROFILE
    timeout = sync_cfg.get(
        "snapshot_timeout_seconds", DEFAULT_SYNC_PROFILE["snapshot_timeout_seconds"]
    )
    return SyncConfig(
        snapshot_timeout_seconds=float(timeout) if timeout else None,
        anonymous_sign_in=bool(
            sync_cfg.get(
                "anonymous_sign_in", DEFAULT_SYNC_PROFILE["anonymous_sign_in"]
            )
        ),
    )
