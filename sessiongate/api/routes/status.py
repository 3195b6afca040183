"""Service, session status and health endpoints."""

from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request

from sessiongate import __version__
from sessiongate.api.deps import get_manager
from sessiongate.config.settings import settings
from sessiongate.session import SessionManager, SessionStatus

router = APIRouter(tags=["status"])


def _timestamp(status: SessionStatus) -> str:
    return status.taken_at.isoformat()


@router.get("/")
async def service_info(manager: SessionManager = Depends(get_manager)) -> dict:
    status = manager.status()
    return {
        "status": "online",
        "service": settings.SERVICE_NAME,
        "version": __version__,
        "state": status.state.value,
        "connected": status.connected,
        "hasQR": status.has_pairing,
        "connectionAttempts": status.attempt_count,
        "lastError": status.last_error,
        "timestamp": _timestamp(status),
    }


@router.get("/status")
async def session_status(manager: SessionManager = Depends(get_manager)) -> dict:
    status = manager.status()
    return {
        "state": status.state.value,
        "connected": status.connected,
        "hasQR": status.has_pairing,
        "connectionAttempts": status.attempt_count,
        "maxAttempts": status.max_attempts,
        "lastError": status.last_error,
        "connectedAt": status.connected_at.isoformat() if status.connected_at else None,
        "timestamp": _timestamp(status),
    }


@router.get("/health")
async def health_check(request: Request, manager: SessionManager = Depends(get_manager)) -> dict:
    started = getattr(request.app.state, "started_at", None)
    uptime = time.monotonic() - started if started is not None else 0.0
    return {
        "status": "healthy",
        "uptime": round(uptime, 3),
        "connected": manager.status().connected,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
