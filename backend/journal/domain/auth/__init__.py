"""Authentication domain package."""

from .controller import AuthFormState, SignInController
from .gateway import (
    AuthGateway,
    CredentialStore,
    InMemoryCredentialStore,
    LocalAuthGateway,
    SqlCredentialStore,
    UserCredential,
    build_users_table,
)

__all__ = [
    "AuthFormState",
    "AuthGateway",
    "CredentialStore",
    "InMemoryCredentialStore",
    "LocalAuthGateway",
    "SignInController",
    "SqlCredentialStore",
    "UserCredential",
    "build_users_table",
]
