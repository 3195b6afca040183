"""Outbound message endpoints."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sessiongate.api.deps import get_manager
from sessiongate.exceptions import NotConnectedError
from sessiongate.session import SessionManager

logger = logging.getLogger("sessiongate.api")

router = APIRouter(tags=["messages"])

NOT_CONNECTED = "Session not connected"
NOT_CONNECTED_HINT = "Scan the pairing code at /qr"
MISSING_FIELDS = "Missing parameters"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class SendMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str | None = Field(default=None, validation_alias=AliasChoices("recipient", "phone"))
    text: str | None = Field(default=None, validation_alias=AliasChoices("text", "message"))


class SendImageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    recipient: str | None = Field(default=None, validation_alias=AliasChoices("recipient", "phone"))
    image_url: str | None = Field(default=None, validation_alias=AliasChoices("imageUrl", "image_url"))
    caption: str = ""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _not_connected() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": NOT_CONNECTED, "hint": NOT_CONNECTED_HINT})


def _missing(required: dict[str, str]) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": MISSING_FIELDS, "required": required})


def _send_failed(error: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": error, "details": str(exc)})


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/send-message", response_model=None)
async def send_message(
    payload: SendMessageRequest | None = None,
    manager: SessionManager = Depends(get_manager),
) -> dict | JSONResponse:
    payload = payload or SendMessageRequest()
    if not manager.status().connected:
        return _not_connected()
    if not payload.recipient or not payload.text:
        return _missing({"recipient": "56912345678", "text": "Hello!"})

    try:
        address = await manager.send_text(payload.recipient, payload.text)
    except NotConnectedError:
        return _not_connected()
    except ValueError:
        raise
    except Exception as exc:
        return _send_failed("Failed to send message", exc)

    return {
        "success": True,
        "message": "Sent",
        "to": address,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.post("/send-image", response_model=None)
async def send_image(
    payload: SendImageRequest | None = None,
    manager: SessionManager = Depends(get_manager),
) -> dict | JSONResponse:
    payload = payload or SendImageRequest()
    if not manager.status().connected:
        return _not_connected()
    if not payload.recipient or not payload.image_url:
        return _missing({"recipient": "56912345678", "imageUrl": "https://..."})

    try:
        address = await manager.send_image(payload.recipient, payload.image_url, payload.caption)
    except NotConnectedError:
        return _not_connected()
    except ValueError:
        raise
    except Exception as exc:
        return _send_failed("Failed to send image", exc)

    return {"success": True, "to": address}
