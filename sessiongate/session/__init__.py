"""
Session lifecycle for the single gateway account.

Public API:
    - SessionManager: Connection state machine, retries and sends
    - SessionStatus: Atomic snapshot returned by SessionManager.status()
    - ConnectionState: Lifecycle states
    - RetryPolicy / RetryDecision: Bounded fixed-delay reconnection
    - PairingCodeCache / PairingChallenge: Latest pairing code and its PNG
    - ProtocolClient: Wrapper contract for the protocol library
    - normalize_recipient: Bare number to full network address
"""

from __future__ import annotations

from .addressing import normalize_recipient
from .events import (
    ConnectionPhase,
    ConnectionUpdate,
    CredentialsUpdate,
    InboundMessage,
    KeysUpdate,
    MessagesUpsert,
    ProtocolEvent,
)
from .manager import MAX_ATTEMPTS_ERROR, SessionManager
from .pairing import PairingChallenge, PairingCodeCache, render_qr_png
from .protocol import (
    AuthState,
    ClientFactory,
    ClientOptions,
    ConnectOutcome,
    EventSink,
    ImageContent,
    KeyMaterialStore,
    MessageContent,
    OutcomeKind,
    ProtocolClient,
    TextContent,
    classify_close,
    load_client_factory,
)
from .retry import RetryDecision, RetryPolicy
from .state import ConnectionState, Session, SessionStatus

__all__ = [
    "MAX_ATTEMPTS_ERROR",
    "AuthState",
    "ClientFactory",
    "ClientOptions",
    "ConnectOutcome",
    "ConnectionPhase",
    "ConnectionState",
    "ConnectionUpdate",
    "CredentialsUpdate",
    "EventSink",
    "ImageContent",
    "InboundMessage",
    "KeyMaterialStore",
    "KeysUpdate",
    "MessageContent",
    "MessagesUpsert",
    "OutcomeKind",
    "PairingChallenge",
    "PairingCodeCache",
    "ProtocolClient",
    "ProtocolEvent",
    "RetryDecision",
    "RetryPolicy",
    "Session",
    "SessionManager",
    "SessionStatus",
    "TextContent",
    "classify_close",
    "load_client_factory",
    "normalize_recipient",
    "render_qr_png",
]
