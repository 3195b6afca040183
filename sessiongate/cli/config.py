"""
Session Gateway CLI - Configuration Commands

Commands:
    show - Display the effective configuration
"""

from __future__ import annotations

from typing import Any

import typer
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from sessiongate.cli import config_app
from sessiongate.config.settings import Settings, settings


def _mask_url(url: str) -> str:
    if not url:
        return ""
    try:
        return make_url(url).render_as_string(hide_password=True)
    except ArgumentError:
        return "<invalid>"


def effective_config(source: Settings = settings) -> dict[str, Any]:
    """Settings as a plain mapping with secrets masked."""
    data = source.model_dump()
    data["DATABASE_URL"] = _mask_url(source.DATABASE_URL)
    data["CREDENTIAL_BACKEND"] = "sql" if source.uses_database else "file"
    return data


@config_app.command("show")
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """Display the effective configuration."""
    from sessiongate.cli.output import print_json, print_table

    data = effective_config()
    if format == "json":
        print_json(data)
        return

    rows = [[key, str(value)] for key, value in sorted(data.items())]
    print_table("Configuration", ["Setting", "Value"], rows, styles=["cyan", None])
