"""
AtomicBot — the process context. Built once at startup and passed to collaborators.
"""

import asyncio
import importlib
from typing import Any, AsyncGenerator, Callable, Optional

from atomic_bot.auth import CredentialProvider
from atomic_bot.connection import ConnectionManager, ConnectionState, MessageHandler, ReconnectPolicy
from atomic_bot.errors import ConfigurationError
from atomic_bot.models.events import InboundMessage
from atomic_bot.pairing import PairingFlow
from atomic_bot.settings import Settings
from atomic_bot.sinks import FanoutSink, PersistenceSink, build_sink
from atomic_bot.transport.base import SocketFactory


def load_object(path: str) -> Any:
    """Import 'package.module:attribute'."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Expected 'module:attribute', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name}: {e}")
    try:
        return getattr(module, attr)
    except AttributeError:
        raise ConfigurationError(f"{module_name} has no attribute {attr!r}")


def load_socket_factory(settings: Settings) -> SocketFactory:
    target = load_object(settings.socket_factory)
    # Classes that need settings (BridgeSocket) expose from_settings()
    if hasattr(target, "from_settings"):
        return target.from_settings(settings)
    return target


class AtomicBot:
    """Async bot context: credentials, persistence, connection lifecycle."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        sink: Optional[PersistenceSink] = None,
        socket_factory: Optional[SocketFactory] = None,
        sleep: Optional[Callable[[float], Any]] = None,
    ):
        self.settings = settings or Settings()
        self.settings.validate_required()

        self.sink = sink or build_sink(self.settings)
        self.provider = CredentialProvider.from_config(self.settings.baileys_session, self.sink)
        self.pairing = PairingFlow(self.settings.phone_number, grace_s=self.settings.pairing_grace)
        self.manager = ConnectionManager(
            self.provider,
            socket_factory or load_socket_factory(self.settings),
            pairing=self.pairing,
            policy=ReconnectPolicy(
                initial=self.settings.reconnect_delay,
                factor=self.settings.reconnect_factor,
                max_delay=self.settings.reconnect_max_delay,
            ),
            sleep=sleep or asyncio.sleep,
        )

    @property
    def state(self) -> ConnectionState:
        return self.manager.state

    @property
    def connected(self) -> bool:
        return self.manager.state is ConnectionState.OPEN

    async def send_message(self, jid: str, payload: dict[str, Any]) -> Any:
        return await self.manager.send_message(jid, payload)

    def add_message_handler(self, handler: MessageHandler) -> Callable[[], None]:
        return self.manager.add_message_handler(handler)

    async def subscribe(self) -> AsyncGenerator[InboundMessage, None]:
        """Persistent stream of inbound messages. Never terminates on its own."""
        queue: asyncio.Queue[InboundMessage] = asyncio.Queue()
        remove = self.manager.add_message_handler(queue.put_nowait)
        try:
            while True:
                yield await queue.get()
        finally:
            remove()

    async def run(self) -> int:
        """Run until logout; returns the exit code."""
        try:
            return await self.manager.run()
        finally:
            await self.close()

    async def close(self) -> None:
        await self.manager.close()
        sinks = self.sink.sinks if isinstance(self.sink, FanoutSink) else [self.sink]
        for sink in sinks:
            close = getattr(sink, "close", None)
            if close is not None:
                await close()
