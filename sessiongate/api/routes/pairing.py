"""Pairing code endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse, Response

from sessiongate.api.deps import get_manager
from sessiongate.session import SessionManager

router = APIRouter(tags=["pairing"])


@router.get("/qr")
async def pairing_code(manager: SessionManager = Depends(get_manager)) -> dict:
    """The current pairing code as a data URL, or why there is none."""
    status = manager.status()
    if status.connected:
        return {"status": "connected", "message": "Session is already linked"}

    challenge = status.pairing
    if challenge is not None and not challenge.is_rendered:
        manager.pairing_image()
        challenge = manager.status().pairing

    if challenge is None or challenge.data_url is None:
        return {
            "status": "waiting",
            "message": "Pairing code not available yet",
            "connectionAttempts": status.attempt_count,
            "lastError": status.last_error,
        }
    return {
        "status": "qr_ready",
        "qrcode": challenge.data_url,
        "issuedAt": challenge.issued_at.isoformat(),
    }


@router.get("/qr-image", response_model=None)
async def pairing_image(manager: SessionManager = Depends(get_manager)) -> Response:
    png = manager.pairing_image()
    if png is None:
        return PlainTextResponse("Pairing code not available yet", status_code=404)
    return Response(content=png, media_type="image/png")
