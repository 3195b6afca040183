"""Local multi-file credential backend: one JSON file per composite key."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from urllib.parse import quote, unquote

from sessiongate.exceptions import CredentialStoreError

from .base import CredentialStore

logger = logging.getLogger(__name__)

_SUFFIX = ".json"


def file_name_for(key: str) -> str:
    """Map a composite key to a safe, reversible file name."""
    return quote(key, safe="-_.") + _SUFFIX


def key_for(file_name: str) -> str:
    """Inverse of :func:`file_name_for` for listing."""
    return unquote(file_name[: -len(_SUFFIX)])


class FileCredentialStore(CredentialStore):
    """
    Stores each composite key as one file under a session directory.

    A missing file means the key is absent. Writes go to a temporary file
    that is renamed over the target so readers never see a partial blob.

    Example:
        store = FileCredentialStore("./auth_session")
        await store.write_blob("pre-key:1", {"public": b"..."})
    """

    backend_name = "file"

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self._directory = Path(directory)
        try:
            self._directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("event=auth_dir_failed path=%s error=%s", self._directory, exc)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, key: str) -> Path:
        return self._directory / file_name_for(key)

    def _read_sync(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CredentialStoreError(str(exc)) from exc

    def _write_sync(self, key: str, text: str) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".tmp")
        try:
            tmp.write_text(text, encoding="utf-8")
            os.replace(tmp, path)
        except OSError as exc:
            raise CredentialStoreError(str(exc)) from exc

    def _delete_sync(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise CredentialStoreError(str(exc)) from exc

    def _keys_sync(self) -> list[str]:
        try:
            return [
                key_for(path.name)
                for path in self._directory.iterdir()
                if path.is_file() and path.name.endswith(_SUFFIX)
            ]
        except OSError as exc:
            raise CredentialStoreError(str(exc)) from exc

    async def _read(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read_sync, key)

    async def _write(self, key: str, text: str) -> None:
        await asyncio.to_thread(self._write_sync, key, text)

    async def _delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete_sync, key)

    async def _keys(self) -> list[str]:
        return await asyncio.to_thread(self._keys_sync)

    def __repr__(self) -> str:
        return f"<FileCredentialStore path={self._directory}>"
