"""FastAPI dependencies."""

from __future__ import annotations

from fastapi import Request

from sessiongate.session import SessionManager


def get_manager(request: Request) -> SessionManager:
    """The SessionManager attached to the running application."""
    return request.app.state.manager
