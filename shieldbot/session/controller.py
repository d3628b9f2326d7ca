"""
Session lifecycle controller.

The controller owns the single current Session and drives it through

    IDLE -> CONNECTING -> [AWAITING_PAIRING] -> OPEN
                                    |
                CLOSED_RECOVERABLE -+-> (delayed restart) -> CONNECTING
                CLOSED_TERMINAL    (logged out, no restart)

Each (re)connect creates a fresh Session value. Events delivered by a
superseded Session's handle are ignored, so at most one Session is ever
OPEN. Inbound messages are handed, one at a time and in delivery order, to
the registered message consumers (the safety pipeline, then the
first-contact greeter).
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, List, Mapping

from shieldbot.errors import PersistenceError, TerminalAuthError, TransientConnectionError
from shieldbot.protocol.base import (
    ConnectionUpdate,
    InboundMessage,
    ProtocolClient,
    SessionEvent,
    SessionHandle,
)
from shieldbot.session.backoff import BackoffPolicy
from shieldbot.session.pairing import PairingFlow
from shieldbot.storage.credentials import CredentialBundle, CredentialStore

logger = logging.getLogger(__name__)

MessageConsumer = Callable[[InboundMessage], Awaitable[Any]]


class ConnectionState(str, Enum):
    """Lifecycle state of a Session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_PAIRING = "awaiting_pairing"
    OPEN = "open"
    CLOSED_RECOVERABLE = "closed_recoverable"
    CLOSED_TERMINAL = "closed_terminal"


_LIVE_STATES = frozenset({
    ConnectionState.CONNECTING,
    ConnectionState.AWAITING_PAIRING,
    ConnectionState.OPEN,
})


@dataclass
class Session:
    """
    One connection attempt and its handle.

    Attributes:
        attempt: Process-wide attempt counter (1 for the first connect).
        credentials: Bundle the attempt connected with.
        handle: Protocol handle, once connected.
        state: Current lifecycle state.
        is_authenticated: True once the network reported the connection open.
        started_at: When the attempt began.
    """

    attempt: int
    credentials: CredentialBundle
    handle: SessionHandle | None = None
    state: ConnectionState = ConnectionState.CONNECTING
    is_authenticated: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SessionController:
    """Keeps one authenticated session alive across disconnects."""

    def __init__(
        self,
        client: ProtocolClient,
        store: CredentialStore,
        *,
        pairing: PairingFlow | None = None,
        backoff: BackoffPolicy | None = None,
        pairing_enabled: bool = True,
    ) -> None:
        """Initialize the controller.

        Args:
            client: Protocol collaborator that opens session handles.
            store: Credential store the session reads and writes through.
            pairing: Pairing flow for unregistered devices.
            backoff: Reconnect delay policy.
            pairing_enabled: Whether an unregistered device prompts for a
                pairing identifier.
        """
        self._client = client
        self._store = store
        self._pairing = pairing or PairingFlow()
        self._backoff = backoff or BackoffPolicy()
        self._pairing_enabled = pairing_enabled

        self._consumers: List[MessageConsumer] = []
        self._session: Session | None = None
        self._state = ConnectionState.IDLE
        self._attempts = 0
        self._failures = 0
        self._restarting = False
        self._restart_task: asyncio.Task | None = None
        self._stopped = False
        self._done: asyncio.Event | None = None

        self.sender = SessionReplySender(self)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def session(self) -> Session | None:
        return self._session

    @property
    def failures(self) -> int:
        """Consecutive attempts that never reached OPEN."""
        return self._failures

    @property
    def restart_pending(self) -> bool:
        return self._restarting

    def add_message_consumer(self, consumer: MessageConsumer) -> None:
        """Register an async callable receiving every inbound message."""
        self._consumers.append(consumer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def run(self, *, re_pair: bool = False) -> ConnectionState:
        """Start and wait until the controller is terminal or stopped.

        Args:
            re_pair: Discard stored credentials and pair again first.

        Returns:
            The final state (CLOSED_TERMINAL or IDLE).
        """
        self._done = asyncio.Event()
        if re_pair:
            await self.re_pair()
        else:
            await self.start()
        await self._done.wait()
        return self._state

    async def start(self) -> None:
        """Open a fresh Session with the stored credentials.

        Never raises: a failed start schedules a delayed restart, except a
        TerminalAuthError which closes the controller for good.
        """
        self._stopped = False
        if self._session is not None:
            await self._retire(self._session)

        self._attempts += 1
        session = Session(attempt=self._attempts, credentials=self._store.load())
        self._session = session
        self._state = ConnectionState.CONNECTING
        logger.info(f"Starting session attempt {session.attempt}")

        try:
            await self._open(session)
        except TerminalAuthError as e:
            logger.error(f"Session attempt {session.attempt} rejected: {e}")
            await self._release(session)
            self._mark_closed(session, ConnectionState.CLOSED_TERMINAL)
            self._finish()
        except Exception as e:
            logger.error(f"Session attempt {session.attempt} failed to start: {e}")
            await self._release(session)
            self._mark_closed(session, ConnectionState.CLOSED_RECOVERABLE)
            self._schedule_restart()

    async def stop(self) -> None:
        """Cancel any pending restart, close the handle and go IDLE."""
        self._stopped = True
        await self._cancel_restart()
        if self._session is not None:
            await self._retire(self._session)
        self._state = ConnectionState.IDLE
        logger.info("Session controller stopped")
        self._finish()

    async def re_pair(self) -> None:
        """Discard stored credentials and start a new pairing."""
        await self._cancel_restart()
        if self._session is not None:
            await self._retire(self._session)
        self._store.clear()
        self._pairing.reset()
        self._failures = 0
        logger.warning("Credentials cleared, pairing again")
        await self.start()

    # ------------------------------------------------------------------
    # Connecting
    # ------------------------------------------------------------------

    async def _open(self, session: Session) -> None:
        needs_pairing = self._pairing_enabled and not session.credentials.registered
        if needs_pairing:
            await self._pairing.obtain_identifier()

        version = await self._client.fetch_latest_version()
        logger.info(f"Using protocol version {'.'.join(str(v) for v in version)}")

        handle = await self._client.connect(
            session.credentials, version, get_message=self._get_message
        )
        session.handle = handle

        if self._stopped or not self._is_current(session):
            await self._release(session)
            return

        self._subscribe(session)

        if needs_pairing:
            session.state = ConnectionState.AWAITING_PAIRING
            self._state = ConnectionState.AWAITING_PAIRING
            await self._pairing.request_code(handle)

    def _subscribe(self, session: Session) -> None:
        handle = session.handle
        handle.on(SessionEvent.CONNECTION_UPDATE, partial(self._on_connection_update, session))
        handle.on(SessionEvent.MESSAGES_UPSERT, partial(self._on_messages, session))
        handle.on(SessionEvent.CREDS_UPDATE, partial(self._on_creds_update, session))
        handle.on(SessionEvent.PRESENCE_UPDATE, partial(self._on_presence_update, session))

    async def _get_message(self, key: Mapping[str, Any]) -> Any:
        """Answer protocol message-content lookups with an empty placeholder."""
        logger.debug(f"Message lookup for {key!r}; no local store")
        return None

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _is_current(self, session: Session) -> bool:
        return session is self._session

    async def _on_connection_update(self, session: Session, update: Any) -> None:
        if not self._is_current(session):
            logger.debug(f"Ignoring connection update from superseded attempt {session.attempt}")
            return
        if not isinstance(update, ConnectionUpdate):
            update = ConnectionUpdate.from_dict(update or {})

        if update.connection == "open":
            session.is_authenticated = True
            session.state = ConnectionState.OPEN
            self._state = ConnectionState.OPEN
            self._failures = 0
            logger.info(f"Connection open (attempt {session.attempt})")

        elif update.connection == "close":
            await self._release(session)
            reason = update.close_reason
            label = reason.name if reason is not None else update.status_code
            if update.is_logged_out:
                logger.error(
                    "Logged out by the network. Run 'shieldbot auth reset' "
                    "or 'shieldbot run --re-pair' to pair again."
                )
                self._mark_closed(session, ConnectionState.CLOSED_TERMINAL)
                self._finish()
            else:
                logger.warning(f"Connection closed ({label}), reconnecting")
                self._mark_closed(session, ConnectionState.CLOSED_RECOVERABLE)
                self._schedule_restart()

    async def _on_messages(self, session: Session, payload: Any) -> None:
        if not self._is_current(session):
            return
        if isinstance(payload, Mapping):
            batch = payload.get("messages") or []
        else:
            batch = payload or []

        for raw in batch:
            message = InboundMessage.from_raw(raw)
            for consumer in self._consumers:
                try:
                    await consumer(message)
                except Exception:
                    logger.exception(f"Message consumer failed on message {message.id}")

    async def _on_creds_update(self, session: Session, changes: Any) -> None:
        if not self._is_current(session) or not isinstance(changes, Mapping):
            return
        session.credentials = self._store.apply_update(session.credentials, changes)
        try:
            self._store.save(session.credentials)
        except PersistenceError as e:
            logger.error(f"Could not persist credential update: {e}")

    async def _on_presence_update(self, session: Session, update: Any) -> None:
        logger.debug(f"Presence update: {update!r}")

    # ------------------------------------------------------------------
    # Restart machinery
    # ------------------------------------------------------------------

    def _mark_closed(self, session: Session, state: ConnectionState) -> None:
        session.state = state
        self._state = state
        if not session.is_authenticated:
            self._failures += 1

    def _schedule_restart(self) -> None:
        if self._stopped:
            return
        if self._restarting:
            logger.debug("Restart already pending")
            return
        if self._backoff.exhausted(self._failures):
            logger.error(f"Giving up after {self._failures} consecutive failed attempts")
            self._state = ConnectionState.CLOSED_TERMINAL
            self._finish()
            return

        delay = self._backoff.delay_for(self._failures - 1)
        logger.info(f"Reconnecting in {delay:.1f}s")
        self._restarting = True
        self._restart_task = asyncio.create_task(self._restart_after(delay))

    async def _restart_after(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        finally:
            self._restarting = False
        await self.start()

    async def _cancel_restart(self) -> None:
        task = self._restart_task
        self._restart_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _retire(self, session: Session) -> None:
        """Close a session that is being replaced or stopped."""
        await self._release(session)
        if session.state in _LIVE_STATES:
            session.state = ConnectionState.CLOSED_RECOVERABLE

    async def _release(self, session: Session) -> None:
        handle, session.handle = session.handle, None
        if handle is None:
            return
        try:
            await handle.close()
        except Exception as e:
            logger.debug(f"Error closing handle of attempt {session.attempt}: {e}")

    def _finish(self) -> None:
        if self._done is not None:
            self._done.set()


class SessionReplySender:
    """ReplySender that sends through the controller's open session."""

    def __init__(self, controller: SessionController) -> None:
        self._controller = controller

    async def send_text(self, conversation_id: str, text: str) -> None:
        """Send a text message.

        Raises:
            TransientConnectionError: If no session is open.
        """
        session = self._controller.session
        if session is None or session.state != ConnectionState.OPEN or session.handle is None:
            raise TransientConnectionError("No open session to send through")
        await session.handle.send(conversation_id, {"text": text})
