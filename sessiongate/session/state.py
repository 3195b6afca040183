"""Connection state of the single gateway session."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from .pairing import PairingChallenge


class ConnectionState(str, enum.Enum):
    """Lifecycle states of the session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"


@dataclass
class Session:
    """Mutable session record. Owned and locked by SessionManager."""

    max_attempts: int
    state: ConnectionState = ConnectionState.IDLE
    attempt_count: int = 0
    last_error: str | None = None
    connected_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")


@dataclass(frozen=True)
class SessionStatus:
    """Consistent point-in-time view of the session and its pairing challenge."""

    state: ConnectionState
    attempt_count: int
    max_attempts: int
    last_error: str | None
    pairing: PairingChallenge | None
    connected_at: datetime | None
    taken_at: datetime

    @classmethod
    def capture(cls, session: Session, pairing: PairingChallenge | None) -> "SessionStatus":
        return cls(
            state=session.state,
            attempt_count=session.attempt_count,
            max_attempts=session.max_attempts,
            last_error=session.last_error,
            pairing=pairing,
            connected_at=session.connected_at,
            taken_at=datetime.now(timezone.utc),
        )

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def has_pairing(self) -> bool:
        return self.pairing is not None
