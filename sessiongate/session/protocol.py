"""
Boundary with the messaging-network protocol library.

The gateway does not speak the wire protocol itself. A protocol library is
wrapped in a :class:`ProtocolClient` and exposed through a factory named by
the ``PROTOCOL_CLIENT`` setting (``"package.module:factory"``). The factory
receives the persisted auth state, an event sink and client options; the
client pushes every connection, credential and message event into the sink
in the order the network produced them.
"""

from __future__ import annotations

import enum
import importlib
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from sessiongate.exceptions import ProtocolClientNotConfigured

from .events import ConnectionUpdate, ProtocolEvent

if TYPE_CHECKING:
    from sessiongate.credentials import CredentialStore, KeyUpdates


# ---------------------------------------------------------------------------
# Outgoing content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class ImageContent:
    url: str
    caption: str = ""


MessageContent = Union[TextContent, ImageContent]


# ---------------------------------------------------------------------------
# Auth state handed to the protocol library
# ---------------------------------------------------------------------------


class KeyMaterialStore:
    """Typed key-material view over a CredentialStore."""

    def __init__(self, store: CredentialStore) -> None:
        self._store = store

    async def get(self, category: str, ids: list[str]) -> dict[str, Any]:
        return await self._store.get_keys(category, ids)

    async def set(self, updates: KeyUpdates) -> None:
        await self._store.apply_key_updates(updates)


@dataclass
class AuthState:
    """Credentials the protocol library needs to resume a session."""

    creds: dict[str, Any]
    keys: KeyMaterialStore


@dataclass(frozen=True)
class ClientOptions:
    browser: tuple[str, str, str] = ("Session Gateway", "Chrome", "120.0.0")
    sync_full_history: bool = False
    extra: dict[str, Any] = field(default_factory=dict)


EventSink = Callable[[ProtocolEvent], None]


class ProtocolClient(ABC):
    """
    One connection to the messaging network.

    ``connect`` starts the link and returns once setup is done; the link's
    later life is reported through the event sink (a pairing token, then
    ``open``, eventually ``close``). A client is used for one connection
    attempt only; reconnecting builds a new client.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Start the connection. Raises on setup failure."""

    @abstractmethod
    async def send_message(self, address: str, content: MessageContent) -> str | None:
        """Send *content* to a full network address; returns a message id if known."""

    @abstractmethod
    async def close(self) -> None:
        """Drop the connection without logging the account out."""


ClientFactory = Callable[[AuthState, EventSink, ClientOptions], ProtocolClient]


def load_client_factory(path: str) -> ClientFactory:
    """
    Import the client factory named by *path*.

    Args:
        path: ``"package.module:attribute"`` or ``"package.module.attribute"``.

    Raises:
        ProtocolClientNotConfigured: If *path* is empty or cannot be imported.
    """
    if not path:
        raise ProtocolClientNotConfigured("PROTOCOL_CLIENT is not set")
    module_path, sep, attr = path.partition(":")
    if not sep:
        module_path, _, attr = path.rpartition(".")
    if not module_path or not attr:
        raise ProtocolClientNotConfigured(f"Invalid PROTOCOL_CLIENT path: {path!r}")
    try:
        module = importlib.import_module(module_path)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise ProtocolClientNotConfigured(f"Cannot load {path!r}: {exc}") from exc
    if not callable(factory):
        raise ProtocolClientNotConfigured(f"{path!r} is not callable")
    return factory


# ---------------------------------------------------------------------------
# Connection outcomes
# ---------------------------------------------------------------------------


class OutcomeKind(str, enum.Enum):
    SUCCESS = "success"
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class ConnectOutcome:
    """Result of a connection attempt or a close classification."""

    kind: OutcomeKind
    error: str | None = None

    @classmethod
    def success(cls) -> "ConnectOutcome":
        return cls(OutcomeKind.SUCCESS)

    @classmethod
    def retryable(cls, error: str | None = None) -> "ConnectOutcome":
        return cls(OutcomeKind.RETRYABLE, error)

    @classmethod
    def terminal(cls, error: str | None = None) -> "ConnectOutcome":
        return cls(OutcomeKind.TERMINAL, error)

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


def classify_close(update: ConnectionUpdate, logged_out_code: int) -> ConnectOutcome:
    """A close carrying the logged-out code is terminal; anything else is retryable."""
    reason = update.reason or "unknown"
    error = f"connection closed: {reason} ({update.status_code})"
    if update.status_code is not None and update.status_code == logged_out_code:
        return ConnectOutcome.terminal(error)
    return ConnectOutcome.retryable(error)
