"""
Session Gateway CLI - Credential Commands

Commands:
    list    - Show stored credential keys
    migrate - Copy credentials between the file and relational backends
"""

from __future__ import annotations

import asyncio
from collections import Counter
from typing import Optional

import typer

from sessiongate.cli import console, creds_app
from sessiongate.config.settings import settings
from sessiongate.credentials import (
    CREDS_KEY,
    CredentialStore,
    TransferReport,
    build_store,
    copy_credentials,
    open_store,
)


def _source_store(location: Optional[str]) -> CredentialStore:
    if location:
        return open_store(location, settings.SESSION_ID)
    return build_store(settings)


async def _list_keys(store: CredentialStore) -> list[str]:
    try:
        return await store.list_keys()
    finally:
        await store.close()


async def _migrate(source: CredentialStore, target: CredentialStore) -> TransferReport:
    try:
        return await copy_credentials(source, target)
    finally:
        await source.close()
        await target.close()


def _category(key: str) -> str:
    if key == CREDS_KEY:
        return CREDS_KEY
    return key.partition(":")[0]


@creds_app.command("list")
def list_creds(
    location: Optional[str] = typer.Option(
        None,
        "--location",
        "-l",
        help="Directory or database URL (default: configured backend).",
    ),
    show_keys: bool = typer.Option(
        False,
        "--keys",
        "-k",
        help="List every key instead of per-category counts.",
    ),
) -> None:
    """Show what the credential store holds."""
    from sessiongate.cli.output import print_table, print_warning

    store = _source_store(location)
    backend = store.backend_name
    keys = asyncio.run(_list_keys(store))
    if not keys:
        print_warning(f"No credentials stored ({backend} backend)")
        return

    if show_keys:
        print_table(f"Credential keys ({backend})", ["Key"], [[key] for key in keys])
    else:
        counts = Counter(_category(key) for key in keys)
        rows = [[category, str(count)] for category, count in sorted(counts.items())]
        print_table(f"Credential keys ({backend})", ["Category", "Count"], rows, styles=["cyan", None])
    console.print(f"Total: {len(keys)}")


@creds_app.command("migrate")
def migrate_creds(
    to: str = typer.Option(
        ...,
        "--to",
        "-t",
        help="Target directory or database URL.",
    ),
    source: Optional[str] = typer.Option(
        None,
        "--from",
        "-s",
        help="Source directory or database URL (default: configured backend).",
    ),
) -> None:
    """Copy every stored credential into another backend."""
    from sessiongate.cli.output import print_error, print_success

    source_store = _source_store(source)
    target_store = open_store(to, settings.SESSION_ID)
    report = asyncio.run(_migrate(source_store, target_store))

    if report.skipped:
        console.print(f"[yellow]Skipped unreadable keys:[/yellow] {', '.join(report.skipped)}")
    if not report.ok:
        print_error(
            f"{len(report.failed)} key(s) could not be written",
            details=", ".join(report.failed),
        )
        raise typer.Exit(1)
    print_success(
        f"Copied {report.copied} key(s)",
        details=f"{source_store.backend_name} -> {target_store.backend_name}",
    )
