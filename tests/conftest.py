"""Shared fixtures: an in-memory protocol client and manager builders."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest
import pytest_asyncio

from sessiongate.credentials import FileCredentialStore
from sessiongate.session import (
    AuthState,
    ClientOptions,
    ConnectionPhase,
    ConnectionUpdate,
    EventSink,
    MessageContent,
    PairingCodeCache,
    ProtocolClient,
    ProtocolEvent,
    RetryPolicy,
    SessionManager,
)

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"

# Runs inside FakeClient.connect() before any configured connect error.
ConnectHook = Callable[["FakeClient"], Awaitable[None]]


class FakeClient(ProtocolClient):
    """Protocol client double driven by the test through its event sink."""

    def __init__(
        self,
        auth: AuthState,
        sink: EventSink,
        options: ClientOptions,
        *,
        connect_error: Exception | None = None,
        send_error: Exception | None = None,
        connect_hook: ConnectHook | None = None,
    ) -> None:
        self.auth = auth
        self.sink = sink
        self.options = options
        self.connect_error = connect_error
        self.connect_hook = connect_hook
        self.send_error = send_error
        self.connect_calls = 0
        self.closed = False
        self.sent: list[tuple[str, MessageContent]] = []

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_hook is not None:
            await self.connect_hook(self)
        if self.connect_error is not None:
            raise self.connect_error

    async def send_message(self, address: str, content: MessageContent) -> str | None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((address, content))
        return f"MSG{len(self.sent)}"

    async def close(self) -> None:
        self.closed = True

    # -- test drivers --

    def emit(self, event: ProtocolEvent) -> None:
        self.sink(event)

    def offer_pairing(self, token: str) -> None:
        self.sink(ConnectionUpdate(qr=token))

    def open(self) -> None:
        self.sink(ConnectionUpdate(connection=ConnectionPhase.OPEN))

    def drop(self, status_code: int | None = 428, reason: str = "connection lost") -> None:
        self.sink(ConnectionUpdate(connection=ConnectionPhase.CLOSE, status_code=status_code, reason=reason))


class FakeFactory:
    """Client factory recording every client it builds."""

    def __init__(self) -> None:
        self.clients: list[FakeClient] = []
        self.connect_errors: list[Exception | None] = []
        self.connect_hooks: list[ConnectHook | None] = []
        self.send_error: Exception | None = None

    def __call__(self, auth: AuthState, sink: EventSink, options: ClientOptions) -> FakeClient:
        error = self.connect_errors.pop(0) if self.connect_errors else None
        hook = self.connect_hooks.pop(0) if self.connect_hooks else None
        client = FakeClient(
            auth, sink, options, connect_error=error, send_error=self.send_error, connect_hook=hook
        )
        self.clients.append(client)
        return client

    @property
    def latest(self) -> FakeClient:
        return self.clients[-1]


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds or *timeout* elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.005)


def failing_renderer(token: str) -> bytes:
    raise RuntimeError("renderer unavailable")


@pytest.fixture
def factory() -> FakeFactory:
    return FakeFactory()


@pytest.fixture
def store(tmp_path) -> FileCredentialStore:
    return FileCredentialStore(tmp_path / "auth")


@pytest.fixture
def make_manager(store, factory):
    """Build a SessionManager on the fake factory; delay defaults to zero."""

    def _make(
        max_attempts: int = 5,
        delay_seconds: float = 0.0,
        pairing: PairingCodeCache | None = None,
        client_factory=factory,
    ) -> SessionManager:
        return SessionManager(
            store,
            client_factory,
            retry_policy=RetryPolicy(max_attempts=max_attempts, delay_seconds=delay_seconds),
            pairing=pairing,
            default_domain="s.whatsapp.net",
            logged_out_code=401,
        )

    return _make


@pytest_asyncio.fixture
async def manager(make_manager):
    """A started manager whose first client has connected but not opened."""
    mgr = make_manager()
    await mgr.start()
    yield mgr
    await mgr.stop()


@pytest_asyncio.fixture
async def connected_manager(manager, factory):
    factory.latest.open()
    await wait_for(lambda: manager.status().connected)
    return manager
