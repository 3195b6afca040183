"""
Credential persistence abstraction for the session gateway.

This module provides the storage contract for session secrets and protocol
key material. Backends only move serialized text in and out of their medium;
serialization, per-key locking, default-record synthesis and the soft-fail
policy live here so every backend behaves identically.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

from sessiongate.exceptions import CredentialStoreError

from . import codec
from .defaults import init_credentials

logger = logging.getLogger(__name__)

CREDS_KEY = "creds"

# Value used in a key-material batch to remove an id.
REMOVED = None

KeyUpdates = Mapping[str, Mapping[str, Any]]


def composite_key(category: str, key_id: str) -> str:
    """Build the storage key for one key-material blob."""
    if not category:
        raise ValueError("category cannot be empty")
    return f"{category}:{key_id}"


class CredentialStore(ABC):
    """
    Abstract base class for credential storage backends.

    Subclasses implement the raw text operations (``_read``, ``_write``,
    ``_delete``, ``_keys``). The blob methods never raise on I/O failure:
    reads return ``None`` and writes return ``False`` after logging, so the
    connection state machine keeps running without persistence confirmation.
    The one exception is :meth:`read_credential_record`, which raises rather
    than replace an unreadable record with a fresh identity.

    Operations on the same composite key are serialized; operations on
    distinct keys may run concurrently.

    Example:
        store = FileCredentialStore("./auth_session")

        creds = await store.read_credential_record()
        await store.apply_key_updates({
            "pre-key": {"1": {"public": b"...", "private": b"..."}, "2": None},
        })
    """

    backend_name: str = "abstract"

    def __init__(self) -> None:
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._key_users: dict[str, int] = {}
        self._creds_lock = asyncio.Lock()

    # -- raw backend operations ---------------------------------------------

    @abstractmethod
    async def _read(self, key: str) -> str | None:
        """Return the stored text for *key*, or None if absent.

        Raises:
            CredentialStoreError: If the medium cannot be read.
        """

    @abstractmethod
    async def _write(self, key: str, text: str) -> None:
        """Insert or replace the stored text for *key*.

        Raises:
            CredentialStoreError: If the medium cannot be written.
        """

    @abstractmethod
    async def _delete(self, key: str) -> None:
        """Remove *key*. Removing an absent key is not an error.

        Raises:
            CredentialStoreError: If the medium cannot be written.
        """

    @abstractmethod
    async def _keys(self) -> list[str]:
        """List every stored composite key."""

    async def close(self) -> None:
        """Release backend resources."""

    # -- blob contract ---------------------------------------------------------

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        """Hold the lock for *key*; the lock is dropped once nobody holds or awaits it."""
        lock = self._key_locks.get(key)
        if lock is None:
            lock = self._key_locks[key] = asyncio.Lock()
        self._key_users[key] = self._key_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            remaining = self._key_users[key] - 1
            if remaining:
                self._key_users[key] = remaining
            else:
                del self._key_users[key]
                del self._key_locks[key]

    async def _load(self, key: str) -> Any | None:
        """Read and decode one blob; None only when the key is absent.

        Raises:
            CredentialStoreError: If the medium cannot be read or the text
                cannot be decoded.
        """
        async with self._locked(key):
            text = await self._read(key)
            if text is None:
                return None
            return codec.decode(text)

    async def read_blob(self, key: str) -> Any | None:
        """
        Read and decode one blob.

        Args:
            key: Composite key.

        Returns:
            The decoded value, or None if absent or unreadable.
        """
        try:
            return await self._load(key)
        except CredentialStoreError as exc:
            logger.error("event=read_failed backend=%s key=%s error=%s", self.backend_name, key, exc)
            return None

    async def write_blob(self, key: str, value: Any) -> bool:
        """
        Encode and upsert one blob; a later write replaces an earlier one.

        Args:
            key: Composite key.
            value: Any JSON-compatible value; bytes allowed at any depth.

        Returns:
            True if the write reached the backend, False otherwise.
        """
        async with self._locked(key):
            try:
                await self._write(key, codec.encode(value))
            except CredentialStoreError as exc:
                logger.error("event=write_failed backend=%s key=%s error=%s", self.backend_name, key, exc)
                return False
        return True

    async def delete_blob(self, key: str) -> bool:
        """
        Remove one blob.

        Args:
            key: Composite key.

        Returns:
            True if the delete reached the backend, False otherwise.
        """
        async with self._locked(key):
            try:
                await self._delete(key)
            except CredentialStoreError as exc:
                logger.error("event=delete_failed backend=%s key=%s error=%s", self.backend_name, key, exc)
                return False
        return True

    async def list_keys(self) -> list[str]:
        """Return every stored composite key, sorted. Empty on failure."""
        try:
            return sorted(await self._keys())
        except CredentialStoreError as exc:
            logger.error("event=list_failed backend=%s error=%s", self.backend_name, exc)
            return []

    # -- credential record -----------------------------------------------------

    async def read_credential_record(self) -> dict[str, Any]:
        """
        Load the ``creds`` record, synthesizing and persisting a default
        record the first time it is found absent.

        Returns:
            The credential record mapping.

        Raises:
            CredentialStoreError: If the stored record exists but cannot be
                read or decoded. Nothing is written in that case.
        """
        async with self._creds_lock:
            try:
                creds = await self._load(CREDS_KEY)
            except CredentialStoreError as exc:
                logger.error("event=creds_read_failed backend=%s error=%s", self.backend_name, exc)
                raise
            if creds is None:
                logger.info("event=creds_initialized backend=%s", self.backend_name)
                creds = init_credentials()
                await self.write_blob(CREDS_KEY, creds)
            return creds

    async def write_credential_record(self, creds: Mapping[str, Any]) -> bool:
        """Persist the whole ``creds`` record."""
        return await self.write_blob(CREDS_KEY, dict(creds))

    # -- key material ------------------------------------------------------------

    async def get_keys(self, category: str, ids: list[str]) -> dict[str, Any]:
        """
        Fetch key-material blobs for *ids* in *category*.

        Returns:
            Mapping of id to blob; absent ids are omitted.
        """
        values = await asyncio.gather(
            *(self.read_blob(composite_key(category, key_id)) for key_id in ids)
        )
        return {key_id: value for key_id, value in zip(ids, values) if value is not None}

    async def apply_key_updates(self, updates: KeyUpdates) -> int:
        """
        Apply a key-material batch, one storage operation per entry.

        A ``None`` value removes that id. The batch is not atomic across
        keys.

        Args:
            updates: Mapping of category to mapping of id to blob or None.

        Returns:
            Number of operations that reached the backend.
        """
        operations = []
        for category, entries in updates.items():
            for key_id, value in entries.items():
                key = composite_key(category, key_id)
                if value is REMOVED:
                    operations.append(self.delete_blob(key))
                else:
                    operations.append(self.write_blob(key, value))
        results = await asyncio.gather(*operations)
        failed = results.count(False)
        if failed:
            logger.warning(
                "event=key_batch_partial backend=%s applied=%d failed=%d",
                self.backend_name,
                len(results) - failed,
                failed,
            )
        return len(results) - failed

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} backend={self.backend_name}>"
