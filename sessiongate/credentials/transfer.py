"""Copy credentials between storage backends."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sessiongate.config.settings import normalize_database_url

from .base import CredentialStore
from .file_store import FileCredentialStore
from .sql_store import SQLCredentialStore

logger = logging.getLogger(__name__)


def open_store(location: str, session_id: str = "default") -> CredentialStore:
    """A relational store for a database URL, otherwise a file store rooted at *location*."""
    if "://" in location:
        return SQLCredentialStore(normalize_database_url(location), session_id=session_id)
    return FileCredentialStore(location)


@dataclass
class TransferReport:
    copied: int = 0
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


async def copy_credentials(source: CredentialStore, target: CredentialStore) -> TransferReport:
    """
    Copy every blob from *source* into *target*.

    Existing keys in *target* are overwritten. Unreadable source blobs are
    reported as skipped; rejected writes as failed.
    """
    report = TransferReport()
    for key in await source.list_keys():
        value = await source.read_blob(key)
        if value is None:
            report.skipped.append(key)
            continue
        if await target.write_blob(key, value):
            report.copied += 1
        else:
            report.failed.append(key)
    logger.info(
        "event=credentials_copied source=%s target=%s copied=%d skipped=%d failed=%d",
        source.backend_name,
        target.backend_name,
        report.copied,
        len(report.skipped),
        len(report.failed),
    )
    return report
