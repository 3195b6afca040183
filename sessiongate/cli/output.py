"""
Session Gateway CLI - Rich Output Helpers

Functions:
    print_table     - Print a formatted table
    print_json      - Print formatted JSON
    print_error     - Print error message
    print_success   - Print success message
    print_warning   - Print warning message
    print_key_value - Print aligned key/value pairs
"""

from __future__ import annotations

import json
from typing import Any, Optional

from rich.console import Console
from rich.json import JSON
from rich.table import Table

# Create console instances
console = Console()
err_console = Console(stderr=True)


def print_table(
    title: str,
    columns: list[str],
    rows: list[list[str]],
    styles: Optional[list[str]] = None,
) -> None:
    """
    Print a rich table.

    Args:
        title: Table title
        columns: Column headers
        rows: Table rows (list of lists)
        styles: Optional column styles
    """
    table = Table(title=title)
    for i, col in enumerate(columns):
        style = styles[i] if styles and i < len(styles) else None
        table.add_column(col, style=style)

    for row in rows:
        padded_row = list(row) + [""] * (len(columns) - len(row))
        table.add_row(*padded_row[:len(columns)])

    console.print(table)


def print_json(data: dict | list, indent: int = 2, sort_keys: bool = False) -> None:
    """Print highlighted JSON."""
    console.print(JSON(json.dumps(data, indent=indent, sort_keys=sort_keys, default=str)))


def print_error(
    message: str,
    details: Optional[str] = None,
    hint: Optional[str] = None,
) -> None:
    """
    Print error message.

    Args:
        message: Error message
        details: Optional detailed error information
        hint: Optional hint for resolving the error
    """
    err_console.print(f"[bold red]Error:[/bold red] {message}")

    if details:
        err_console.print(f"[dim]{details}[/dim]")

    if hint:
        err_console.print(f"[yellow]Hint:[/yellow] {hint}")


def print_success(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold green]Success:[/bold green] {message}")

    if details:
        console.print(f"[dim]{details}[/dim]")


def print_warning(message: str, details: Optional[str] = None) -> None:
    console.print(f"[bold yellow]Warning:[/bold yellow] {message}")

    if details:
        console.print(f"[dim]{details}[/dim]")


def print_key_value(
    items: list[tuple[str, Any]],
    title: Optional[str] = None,
    key_style: str = "cyan",
) -> None:
    """
    Print key/value pairs as a borderless two-column table.

    Args:
        items: (key, value) tuples
        title: Optional title
        key_style: Style for keys
    """
    table = Table(title=title, show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style=key_style)
    table.add_column("Value")
    for key, value in items:
        table.add_row(key, str(value))
    console.print(table)
