"""
Session lifecycle manager.

Owns the single connection to the messaging network and drives its state
machine::

    IDLE -> CONNECTING -> {AWAITING_PAIRING | CONNECTED} -> CLOSED
    CLOSED -> CONNECTING (retry) | FAILED (logged out / retries exhausted)

Protocol events arrive on one ordered queue consumed by a single task. Each
event is handled to completion, including credential writes, before the
next one is taken, so a close can never overtake the write it followed.
Reconnects are deferred tasks; at most one is pending and attempts never
overlap.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from datetime import datetime, timezone
from functools import partial
from typing import TYPE_CHECKING, Any

from sessiongate.credentials import CredentialStore, build_store
from sessiongate.exceptions import NotConnectedError, ProtocolClientNotConfigured

from .addressing import normalize_recipient
from .events import (
    ConnectionPhase,
    ConnectionUpdate,
    CredentialsUpdate,
    KeysUpdate,
    MessagesUpsert,
    ProtocolEvent,
)
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
from .retry import RetryPolicy
from .state import ConnectionState, Session, SessionStatus

if TYPE_CHECKING:
    from sessiongate.config.settings import Settings

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_ERROR = "max attempts reached"

_PAIRABLE_STATES = (ConnectionState.CONNECTING, ConnectionState.AWAITING_PAIRING)

_QueueItem = tuple[int, ProtocolEvent]


class SessionManager:
    """
    Drives the gateway's single session.

    Attributes are read through :meth:`status`, which returns an atomic
    snapshot; all mutation happens on the event loop under an internal lock
    so API readers never observe a half-applied transition.

    Example:
        manager = SessionManager.from_settings(settings)
        await manager.start()
        ...
        if manager.status().connected:
            await manager.send_text("5691234", "hello")
        await manager.stop()
    """

    def __init__(
        self,
        store: CredentialStore,
        client_factory: ClientFactory | None = None,
        *,
        client_path: str = "",
        retry_policy: RetryPolicy | None = None,
        pairing: PairingCodeCache | None = None,
        default_domain: str = "s.whatsapp.net",
        logged_out_code: int = 401,
        options: ClientOptions | None = None,
    ) -> None:
        self._store = store
        self._client_factory = client_factory
        self._client_path = client_path
        self._retry = retry_policy or RetryPolicy()
        self._pairing = pairing or PairingCodeCache()
        self._default_domain = default_domain
        self._logged_out_code = logged_out_code
        self._options = options or ClientOptions()

        self._session = Session(max_attempts=self._retry.max_attempts)
        self._lock = threading.Lock()

        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[_QueueItem | None] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._deferred_delay: float | None = None
        self._client: ProtocolClient | None = None
        self._auth: AuthState | None = None
        self._generation = 0
        self._closed_generation = 0
        self._started = False
        self._stopping = False

    @classmethod
    def from_settings(cls, settings: Settings, store: CredentialStore | None = None) -> "SessionManager":
        """Build a manager wired from configuration."""
        renderer = partial(render_qr_png, box_size=settings.QR_BOX_SIZE, border=settings.QR_BORDER)
        return cls(
            store or build_store(settings),
            client_path=settings.PROTOCOL_CLIENT,
            retry_policy=RetryPolicy(
                max_attempts=settings.MAX_RECONNECT_ATTEMPTS,
                delay_seconds=settings.RECONNECT_DELAY_SECONDS,
            ),
            pairing=PairingCodeCache(renderer),
            default_domain=settings.DEFAULT_DOMAIN,
            logged_out_code=settings.LOGGED_OUT_STATUS_CODE,
            options=ClientOptions(
                browser=tuple(settings.BROWSER),
                sync_full_history=settings.SYNC_FULL_HISTORY,
            ),
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def store(self) -> CredentialStore:
        return self._store

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    @property
    def started(self) -> bool:
        return self._started

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def status(self) -> SessionStatus:
        """Atomic snapshot of session state and the cached pairing challenge."""
        with self._lock:
            return SessionStatus.capture(self._session, self._pairing.current)

    async def drain(self) -> None:
        """Wait until every queued protocol event has been handled."""
        if self._events is not None and self._started:
            await self._events.join()

    def pairing_image(self) -> bytes | None:
        """PNG of the cached challenge, rendering it now if an earlier render failed."""
        challenge = self._pairing.ensure_rendered()
        if challenge is None:
            return None
        return challenge.rendered

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start consuming protocol events and open the first connection."""
        if self._started:
            return
        self._started = True
        self._stopping = False
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume(), name="sessiongate-events")
        logger.info("stage=starting store=%s", self._store.backend_name)
        await self._connect()

    async def stop(self) -> None:
        """Stop retrying, drop the connection and flush pending events."""
        if not self._started:
            return
        self._stopping = True
        # Events from the client being closed are ignored from here on.
        self._generation += 1

        task, self._reconnect_task = self._reconnect_task, None
        self._deferred_delay = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        await self._discard_client()

        if self._events is not None:
            self._events.put_nowait(None)
        if self._consumer is not None:
            await self._consumer
            self._consumer = None

        await self._store.close()
        self._started = False
        logger.info("stage=stopped")

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_text(self, recipient: str, text: str) -> str:
        """Send a text message; returns the dispatched address."""
        return await self._send(recipient, TextContent(text=text))

    async def send_image(self, recipient: str, image_url: str, caption: str = "") -> str:
        """Send an image by URL with an optional caption; returns the dispatched address."""
        return await self._send(recipient, ImageContent(url=image_url, caption=caption))

    async def _send(self, recipient: str, content: MessageContent) -> str:
        client = self._client
        if client is None or not self.status().connected:
            raise NotConnectedError("session is not connected")
        address = normalize_recipient(recipient, self._default_domain)
        try:
            await client.send_message(address, content)
        except Exception as exc:
            logger.error("stage=send_fail to=%s kind=%s error=%s", address, type(content).__name__, exc)
            raise
        logger.info("stage=send_ok to=%s kind=%s", address, type(content).__name__)
        return address

    # ------------------------------------------------------------------
    # Connection attempts
    # ------------------------------------------------------------------

    def _update(self, *, clear_pairing: bool = False, **changes: Any) -> SessionStatus:
        with self._lock:
            previous = self._session.state
            if clear_pairing:
                self._pairing.clear()
            for name, value in changes.items():
                setattr(self._session, name, value)
            status = SessionStatus.capture(self._session, self._pairing.current)
        if status.state != previous:
            logger.info(
                "stage=state_transition from=%s to=%s attempts=%d/%d",
                previous.value,
                status.state.value,
                status.attempt_count,
                status.max_attempts,
            )
        return status

    def _resolve_factory(self) -> ClientFactory:
        if self._client_factory is None:
            self._client_factory = load_client_factory(self._client_path)
        return self._client_factory

    def _sink_for(self, generation: int) -> EventSink:
        def sink(event: ProtocolEvent) -> None:
            events, loop = self._events, self._loop
            if events is None or loop is None:
                logger.debug("stage=event_dropped event=%s", type(event).__name__)
                return
            try:
                running = asyncio.get_running_loop()
            except RuntimeError:
                running = None
            if running is loop:
                events.put_nowait((generation, event))
            else:
                loop.call_soon_threadsafe(events.put_nowait, (generation, event))

        return sink

    async def _discard_client(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.close()
        except Exception as exc:
            logger.warning("stage=client_close_failed error=%s", exc)

    async def _open_connection(self) -> ConnectOutcome:
        # Bump first so anything the old client emits while closing is stale.
        self._generation += 1
        generation = self._generation
        await self._discard_client()

        try:
            factory = self._resolve_factory()
        except ProtocolClientNotConfigured as exc:
            logger.error("stage=connect_failed error=%s", exc)
            return ConnectOutcome.terminal(str(exc))

        try:
            creds = await self._store.read_credential_record()
            self._auth = AuthState(creds=creds, keys=KeyMaterialStore(self._store))
            self._client = factory(self._auth, self._sink_for(generation), self._options)
            await self._client.connect()
        except Exception as exc:
            logger.exception("stage=connect_failed generation=%d error=%s", generation, exc)
            await self._discard_client()
            return ConnectOutcome.retryable(str(exc) or exc.__class__.__name__)

        logger.info("stage=connect_started generation=%d", generation)
        return ConnectOutcome.success()

    async def _connect(self) -> None:
        if self._stopping:
            return
        self._update(state=ConnectionState.CONNECTING)
        outcome = await self._open_connection()
        if outcome.ok:
            return
        if self._closed_generation == self._generation:
            # A close for this attempt was already counted.
            logger.debug("stage=failure_already_counted generation=%d error=%s", self._generation, outcome.error)
            return
        self._update(clear_pairing=True, state=ConnectionState.CLOSED, last_error=outcome.error)
        self._resolve_failure(outcome)

    def _resolve_failure(self, outcome: ConnectOutcome) -> None:
        """Apply a terminal or retryable outcome to the session."""
        if outcome.kind == OutcomeKind.TERMINAL:
            self._update(clear_pairing=True, state=ConnectionState.FAILED, last_error=outcome.error)
            logger.error("stage=terminal_failure error=%s action=restart_required", outcome.error)
            return

        with self._lock:
            attempts = self._session.attempt_count + 1
        decision = self._retry.decide(attempts)

        if decision.retry:
            self._update(clear_pairing=True, state=ConnectionState.CLOSED, attempt_count=attempts)
            if self._stopping:
                return
            logger.info(
                "stage=retry_scheduled attempt=%d/%d delay=%.1fs",
                attempts,
                self._retry.max_attempts,
                decision.delay_seconds,
            )
            self._schedule_reconnect(decision.delay_seconds)
        else:
            self._update(
                clear_pairing=True,
                state=ConnectionState.FAILED,
                attempt_count=0,
                last_error=MAX_ATTEMPTS_ERROR,
            )
            logger.error("stage=retries_exhausted max_attempts=%d", self._retry.max_attempts)

    def _schedule_reconnect(self, delay: float) -> None:
        pending = self._reconnect_task
        if pending is not None and not pending.done() and pending is not asyncio.current_task():
            # The pending task re-issues this once its own attempt has resolved.
            logger.info("stage=retry_deferred delay=%.1fs", delay)
            self._deferred_delay = delay
            return
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay), name="sessiongate-reconnect"
        )

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # A retry requested while sleeping is this one.
        self._deferred_delay = None
        await self._connect()
        deferred, self._deferred_delay = self._deferred_delay, None
        if deferred is not None and not self._stopping:
            self._schedule_reconnect(deferred)

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        assert self._events is not None
        while True:
            item = await self._events.get()
            try:
                if item is None:
                    return
                generation, event = item
                await self._dispatch(generation, event)
            except Exception:
                logger.exception("stage=event_failed item=%r", item)
            finally:
                self._events.task_done()

    async def _dispatch(self, generation: int, event: ProtocolEvent) -> None:
        if isinstance(event, CredentialsUpdate):
            await self._on_credentials(event)
        elif isinstance(event, KeysUpdate):
            await self._store.apply_key_updates(event.updates)
        elif isinstance(event, MessagesUpsert):
            self._on_messages(event)
        elif isinstance(event, ConnectionUpdate):
            if generation != self._generation or self._stopping:
                logger.debug(
                    "stage=stale_update generation=%d current=%d", generation, self._generation
                )
                return
            await self._on_connection_update(event)
        else:
            logger.warning("stage=unknown_event event=%r", event)

    async def _on_credentials(self, event: CredentialsUpdate) -> None:
        if self._auth is not None:
            creds = self._auth.creds
        else:
            creds = await self._store.read_credential_record()
        creds.update(event.changes)
        if not await self._store.write_credential_record(creds):
            logger.warning("stage=creds_not_persisted fields=%s", ",".join(sorted(event.changes)))

    def _on_messages(self, event: MessagesUpsert) -> None:
        for message in event.messages:
            if message.from_me:
                continue
            logger.info(
                "stage=message_received from=%s kind=%s text=%s",
                message.remote_address,
                event.kind,
                (message.text or "media")[:120],
            )

    async def _on_connection_update(self, update: ConnectionUpdate) -> None:
        logger.info(
            "stage=connection_update connection=%s qr=%s",
            update.connection.value if update.connection else None,
            update.qr is not None,
        )
        if update.qr:
            self._on_pairing_token(update.qr)

        if update.connection == ConnectionPhase.OPEN:
            self._on_open()
        elif update.connection == ConnectionPhase.CLOSE:
            self._on_close(update)

    def _on_pairing_token(self, token: str) -> PairingChallenge | None:
        state = self.status().state
        if state not in _PAIRABLE_STATES:
            logger.warning("stage=qr_ignored state=%s", state.value)
            return None
        challenge = self._pairing.set(token)
        self._update(state=ConnectionState.AWAITING_PAIRING)
        return challenge

    def _on_open(self) -> None:
        self._update(
            clear_pairing=True,
            state=ConnectionState.CONNECTED,
            attempt_count=0,
            last_error=None,
            connected_at=datetime.now(timezone.utc),
        )

    def _on_close(self, update: ConnectionUpdate) -> None:
        state = self.status().state
        if state in (ConnectionState.CLOSED, ConnectionState.FAILED):
            logger.debug("stage=duplicate_close state=%s", state.value)
            return
        self._closed_generation = self._generation
        outcome = classify_close(update, self._logged_out_code)
        logger.warning(
            "stage=closed status_code=%s reason=%s kind=%s",
            update.status_code,
            update.reason or "unknown",
            outcome.kind.value,
        )
        self._update(
            clear_pairing=True,
            state=ConnectionState.CLOSED,
            last_error=outcome.error,
            connected_at=None,
        )
        self._resolve_failure(outcome)

    def __repr__(self) -> str:
        status = self.status()
        return (
            f"<SessionManager state={status.state.value} "
            f"attempts={status.attempt_count}/{status.max_attempts}>"
        )
