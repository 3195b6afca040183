"""
Credential storage for the session gateway.

Public API:
    - CredentialStore: Abstract storage contract
    - FileCredentialStore: One file per composite key (default)
    - SQLCredentialStore: One row per composite key in ``auth_state``
    - build_store: Select a backend from settings
    - open_store / copy_credentials: Move credentials between backends
    - composite_key: Build a ``category:id`` key
    - init_credentials: Fresh default ``creds`` record
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import CREDS_KEY, REMOVED, CredentialStore, KeyUpdates, composite_key
from .defaults import init_credentials
from .file_store import FileCredentialStore
from .sql_store import SQLCredentialStore
from .transfer import TransferReport, copy_credentials, open_store

if TYPE_CHECKING:
    from sessiongate.config.settings import Settings


def build_store(settings: Settings) -> CredentialStore:
    """Return the relational backend when DATABASE_URL is set, else the file backend."""
    if settings.uses_database:
        return SQLCredentialStore(settings.DATABASE_URL, session_id=settings.SESSION_ID)
    return FileCredentialStore(settings.AUTH_DIR)


__all__ = [
    "CREDS_KEY",
    "REMOVED",
    "CredentialStore",
    "FileCredentialStore",
    "KeyUpdates",
    "SQLCredentialStore",
    "TransferReport",
    "build_store",
    "composite_key",
    "copy_credentials",
    "init_credentials",
    "open_store",
]
