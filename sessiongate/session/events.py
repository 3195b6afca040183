"""Events delivered by the protocol layer on its single ordered stream."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Union


class ConnectionPhase(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE = "close"


@dataclass(frozen=True)
class ConnectionUpdate:
    """
    Change in link status.

    Attributes:
        connection: New phase, or None when only a pairing token arrived.
        qr: Fresh pairing token, if the network issued one.
        status_code: Close status code reported by the network.
        reason: Close reason text.
    """

    connection: ConnectionPhase | None = None
    qr: str | None = None
    status_code: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class CredentialsUpdate:
    """Partial update to the ``creds`` record."""

    changes: dict[str, Any]


@dataclass(frozen=True)
class KeysUpdate:
    """Key-material batch: category -> id -> blob, None removes the id."""

    updates: dict[str, dict[str, Any]]


@dataclass(frozen=True)
class InboundMessage:
    remote_address: str
    from_me: bool = False
    text: str | None = None
    message_id: str | None = None


@dataclass(frozen=True)
class MessagesUpsert:
    messages: list[InboundMessage] = field(default_factory=list)
    kind: str = "notify"


ProtocolEvent = Union[ConnectionUpdate, CredentialsUpdate, KeysUpdate, MessagesUpsert]
