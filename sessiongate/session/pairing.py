"""
Pairing challenge cache.

The messaging network links a new device by having the account holder scan
a one-time code. The protocol layer rotates that code while pairing is
pending; this module keeps only the most recent one together with its
rendered PNG form.
"""

from __future__ import annotations

import base64
import io
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone

import qrcode

logger = logging.getLogger(__name__)

Renderer = Callable[[str], bytes]


def render_qr_png(token: str, *, box_size: int = 10, border: int = 4) -> bytes:
    """Render *token* as a QR code PNG."""
    qr = qrcode.QRCode(
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(token)
    qr.make(fit=True)
    img = qr.make_image(fill_color="#000000", back_color="#FFFFFF")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@dataclass(frozen=True)
class PairingChallenge:
    """
    A one-time pairing token and its rendered form.

    Attributes:
        token: Opaque token from the protocol layer.
        rendered: PNG bytes, or None if rendering failed.
        issued_at: When the token was received.
    """

    token: str
    rendered: bytes | None = None
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.token:
            raise ValueError("token cannot be empty")

    @property
    def is_rendered(self) -> bool:
        return self.rendered is not None

    @property
    def data_url(self) -> str | None:
        """The rendered PNG as a ``data:`` URL."""
        if self.rendered is None:
            return None
        return "data:image/png;base64," + base64.b64encode(self.rendered).decode("ascii")


class PairingCodeCache:
    """
    Holds at most one pairing challenge.

    ``set`` replaces whatever was cached; ``clear`` empties the cache.
    Rendering failures are logged and the raw token is kept so a later
    ``ensure_rendered`` call can try again.

    Example:
        cache = PairingCodeCache()
        challenge = cache.set("2@AbC...")
        png = challenge.rendered
    """

    def __init__(self, renderer: Renderer | None = None) -> None:
        self._renderer = renderer or render_qr_png
        self._current: PairingChallenge | None = None
        self._lock = threading.Lock()

    @property
    def current(self) -> PairingChallenge | None:
        with self._lock:
            return self._current

    def render(self, token: str) -> bytes | None:
        try:
            return self._renderer(token)
        except Exception as exc:
            logger.error("event=qr_render_failed error=%s", exc)
            return None

    def set(self, token: str) -> PairingChallenge:
        """Cache *token*, replacing any previous challenge, and render it."""
        challenge = PairingChallenge(token=token, rendered=self.render(token))
        with self._lock:
            replaced = self._current is not None
            self._current = challenge
        logger.info(
            "event=qr_cached rendered=%s replaced=%s",
            challenge.is_rendered,
            replaced,
        )
        return challenge

    def clear(self) -> None:
        with self._lock:
            self._current = None

    def ensure_rendered(self) -> PairingChallenge | None:
        """Render the cached challenge if an earlier render failed."""
        current = self.current
        if current is None or current.is_rendered:
            return current
        rendered = self.render(current.token)
        if rendered is None:
            return current
        with self._lock:
            # Only fill in the render if the challenge was not replaced meanwhile.
            if self._current is current:
                self._current = replace(current, rendered=rendered)
            return self._current

    def __repr__(self) -> str:
        current = self.current
        return f"<PairingCodeCache pending={current is not None}>"
