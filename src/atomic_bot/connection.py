"""
Connection lifecycle manager — owns the protocol socket and the reconnect state machine.

States: CONNECTING -> OPEN -> CLOSED_RECOVERABLE | CLOSED_FATAL.

Each socket gets a generation number and every event it emits is tagged with it.
Events are consumed from one FIFO queue, so they are handled in the order the
protocol library produced them, and anything from a superseded socket is dropped.
A recoverable close tears the socket down, waits, and opens a new one over the same
in-memory credentials. A logout ends `run()` with EXIT_LOGGED_OUT.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import ValidationError

from atomic_bot.auth import CredentialProvider
from atomic_bot.errors import ConnectionError, FatalLogout, RecoverableDisconnect
from atomic_bot.models.events import BridgeEvent, ConnectionUpdate, DisconnectReason, InboundMessage, parse_upsert
from atomic_bot.pairing import PairingFlow
from atomic_bot.transport.base import EventEmitter, ProtocolSocket, SocketFactory

logger = logging.getLogger(__name__)

# Supervisors key off this: exit after logout means "fetch a new pairing code"
EXIT_LOGGED_OUT = 0

MessageHandler = Callable[[InboundMessage], Union[None, Awaitable[None]]]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RECOVERABLE = "closed_recoverable"
    CLOSED_FATAL = "closed_fatal"


@dataclass
class ReconnectPolicy:
    """Exponential backoff with a cap. The first retry always waits `initial`."""
    initial: float = 5.0
    factor: float = 2.0
    max_delay: float = 60.0

    def delay(self, attempt: int) -> float:
        return min(self.initial * self.factor ** max(attempt - 1, 0), self.max_delay)


class LifecycleEvent:
    __slots__ = ("generation", "name", "data")

    def __init__(self, generation: int, name: str, data: Any = None):
        self.generation = generation
        self.name = name
        self.data = data

    def __repr__(self) -> str:
        return f"LifecycleEvent(generation={self.generation}, name={self.name!r})"


class ConnectionManager:
    def __init__(
        self,
        provider: CredentialProvider,
        socket_factory: SocketFactory,
        *,
        pairing: Optional[PairingFlow] = None,
        policy: Optional[ReconnectPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self._provider = provider
        self._socket_factory = socket_factory
        self._pairing = pairing
        self._policy = policy or ReconnectPolicy()
        self._sleep = sleep

        self._state = ConnectionState.CONNECTING
        self._generation = 0
        self._attempt = 0
        self._queue: asyncio.Queue[LifecycleEvent] = asyncio.Queue()
        self._socket: Optional[ProtocolSocket] = None
        self._transport_ready = asyncio.Event()
        self._pairing_task: Optional[asyncio.Task] = None
        self._handlers: list[MessageHandler] = []
        self.last_error_code: Optional[int] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def socket(self) -> Optional[ProtocolSocket]:
        return self._socket

    @property
    def pairing_task(self) -> Optional[asyncio.Task]:
        return self._pairing_task

    def add_message_handler(self, handler: MessageHandler) -> Callable[[], None]:
        """Add an inbound message handler. Returns a cleanup function."""
        self._handlers.append(handler)
        def remove() -> None:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass
        return remove

    async def send_message(self, jid: str, payload: dict[str, Any]) -> Any:
        if self._state is not ConnectionState.OPEN or self._socket is None:
            raise ConnectionError(f"Cannot send to {jid}: connection is {self._state.value}")
        return await self._socket.send_message(jid, payload)

    # -------- Main loop --------

    async def run(self) -> int:
        """Serve sessions until logout. Returns the process exit code."""
        try:
            while True:
                try:
                    await self._serve_session()
                except FatalLogout as e:
                    logger.error(
                        "Session logged out! Get a new BAILEYS_SESSION string; the bot will exit.",
                        extra={"generation": self._generation, "error_code": e.error_code, "retrying": False},
                    )
                    return EXIT_LOGGED_OUT
                except RecoverableDisconnect as e:
                    if self._pairing_pending():
                        # Pairing runs once per process; a new code needs a restart
                        logger.error(
                            "Connection closed before a pairing code was obtained. "
                            "Restart the process to request a new pairing code.",
                            extra={"generation": self._generation, "error_code": e.error_code},
                        )
                    await self._teardown()
                    self._attempt += 1
                    delay = self._policy.delay(self._attempt)
                    logger.warning(
                        f"Connection closed ({e}, code={e.error_code}). Reconnecting in {delay:.1f}s",
                        extra={"generation": self._generation, "error_code": e.error_code,
                               "retrying": True, "attempt": self._attempt},
                    )
                    await self._sleep(delay)
        finally:
            await self._teardown()

    async def close(self) -> None:
        await self._teardown()

    async def _serve_session(self) -> None:
        await self._open_session()
        while True:
            event = await self._queue.get()
            if event.generation != self._generation:
                logger.debug(f"Dropping {event!r}; current generation is {self._generation}")
                continue
            if event.name == BridgeEvent.CONNECTION_UPDATE:
                state = self.handle_update(event)
                if state is ConnectionState.CLOSED_FATAL:
                    raise FatalLogout(self.last_error_code)
                if state is ConnectionState.CLOSED_RECOVERABLE:
                    raise RecoverableDisconnect(self.last_error_code)
            elif event.name == BridgeEvent.CREDS_UPDATE:
                if isinstance(event.data, dict):
                    self._provider.update_creds(event.data)
            elif event.name == BridgeEvent.MESSAGES_UPSERT:
                await self._dispatch(parse_upsert(event.data))

    async def _open_session(self) -> None:
        self._generation += 1
        generation = self._generation
        self._transport_ready = asyncio.Event()
        self._set_state(ConnectionState.CONNECTING)

        sock = self._socket_factory(self._provider, self._emitter(generation))
        self._socket = sock
        try:
            await sock.connect()
        except (ConnectionError, OSError) as e:
            logger.error(f"Could not open session: {e}", extra={"generation": generation})
            self.last_error_code = int(DisconnectReason.CONNECTION_CLOSED)
            self._set_state(ConnectionState.CLOSED_RECOVERABLE)
            raise RecoverableDisconnect(self.last_error_code, str(e))

        if self._pairing is not None and not self._pairing.started and not self._provider.registered:
            self._pairing_task = asyncio.create_task(self._pairing.run(sock, self._transport_ready))
            self._pairing_task.add_done_callback(_log_task_failure)

    def _emitter(self, generation: int) -> EventEmitter:
        def emit(name: str, data: Any = None) -> None:
            self._queue.put_nowait(LifecycleEvent(generation, name, data))
        return emit

    # -------- State machine --------

    def handle_update(self, event: LifecycleEvent) -> Optional[ConnectionState]:
        """Apply one connection.update. Returns the new state, or None when nothing changed."""
        if event.generation != self._generation:
            logger.debug(f"Ignoring stale connection.update from generation {event.generation}")
            return None
        try:
            update = ConnectionUpdate.model_validate(event.data or {})
        except ValidationError as e:
            logger.warning(f"Malformed connection.update ignored: {e}")
            return None

        if update.qr:
            self._transport_ready.set()

        if update.connection == "open":
            self._attempt = 0
            self._cancel_pairing()
            self._set_state(ConnectionState.OPEN)
            logger.info("Atomic is online and ready for action!")
        elif update.connection == "connecting":
            self._set_state(ConnectionState.CONNECTING)
        elif update.connection == "close":
            self.last_error_code = update.error_code
            if update.logged_out:
                self._set_state(ConnectionState.CLOSED_FATAL)
            else:
                self._set_state(ConnectionState.CLOSED_RECOVERABLE)
        else:
            return None
        return self._state

    def _set_state(self, new_state: ConnectionState) -> None:
        if self._state is new_state:
            return
        logger.info(
            f"Connection state {self._state.value} -> {new_state.value} (generation {self._generation})",
            extra={"generation": self._generation, "state": new_state.value, "previous": self._state.value},
        )
        self._state = new_state

    # -------- Helpers --------

    async def _dispatch(self, messages: list[InboundMessage]) -> None:
        for msg in messages:
            logger.info(f"[{'GROUP' if msg.is_group else 'PRIVATE'}] {msg.from_jid}: {msg.body}")
            for handler in list(self._handlers):
                try:
                    result = handler(msg)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Message handler failed for {msg.from_jid}: {e}", exc_info=True)

    def _pairing_pending(self) -> bool:
        return self._pairing_task is not None and not self._pairing_task.done()

    def _cancel_pairing(self) -> None:
        if self._pairing_task is not None and not self._pairing_task.done():
            self._pairing_task.cancel()

    async def _teardown(self) -> None:
        self._cancel_pairing()
        sock, self._socket = self._socket, None
        if sock is not None:
            try:
                await sock.close()
            except (ConnectionError, OSError) as e:
                logger.warning(f"Error while closing session: {e}")


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Pairing task failed: {exc}", exc_info=exc)
