"""Config package exporting loader helpers."""

from .loader import AuthConfig, Settings, StoreConfig, SyncConfig, load_settings

__all__ = ["AuthConfig", "Settings", "StoreConfig", "SyncConfig", "load_settings"]
