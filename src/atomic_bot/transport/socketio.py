"""
Socket.IO client for a protocol bridge — the process that runs the external
messaging library and does the handshake and encryption.

The bridge reads and writes key material through us (`keys.*` calls answered by
ack) and forwards the library's event bus. Bytes cross the wire in Buffer-JSON form.
Socket.IO's own reconnection is off: the lifecycle manager owns reconnection, so a
transport drop is reported as a CONNECTION_LOST close.
"""

import logging
from typing import Any, Optional

import socketio
from socketio import exceptions as sio_exceptions

from atomic_bot.errors import ConnectionError
from atomic_bot.models.events import BridgeCall, BridgeEvent, DisconnectReason
from atomic_bot.serializer import from_wire, to_wire
from atomic_bot.transport.base import AuthState, EventEmitter

SOCKETIO_PATH = "/socket.io/"
DEFAULT_BROWSER = ["Mac OS", "Chrome", "14.4.1"]

logger = logging.getLogger(__name__)


class BridgeSocket:
    def __init__(
        self,
        auth: AuthState,
        emit: EventEmitter,
        url: str = "http://127.0.0.1:3000",
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        call_timeout: float = 30.0,
        browser: Optional[list[str]] = None,
        sync_history: bool = True,
    ):
        self._auth = auth
        self._emit = emit
        self._url = url
        self._token = token
        self._transports = transports or ["websocket"]
        self._call_timeout = call_timeout
        self._browser = browser or DEFAULT_BROWSER
        self._sync_history = sync_history
        self._sio: Optional[socketio.AsyncClient] = None
        self._closing = False

    @classmethod
    def from_settings(cls, settings: Any):
        """Factory bound to settings, usable as a SocketFactory."""
        def factory(auth: AuthState, emit: EventEmitter) -> "BridgeSocket":
            return cls(auth, emit, url=settings.bridge_url, token=settings.bridge_token)
        return factory

    @property
    def connected(self) -> bool:
        return self._sio is not None and self._sio.connected

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient(reconnection=False)
        self._sio.on("disconnect", self._on_disconnect)
        self._sio.on(BridgeEvent.CONNECTION_UPDATE, self._forward(BridgeEvent.CONNECTION_UPDATE))
        self._sio.on(BridgeEvent.CREDS_UPDATE, self._forward(BridgeEvent.CREDS_UPDATE))
        self._sio.on(BridgeEvent.MESSAGES_UPSERT, self._forward(BridgeEvent.MESSAGES_UPSERT))
        self._sio.on(BridgeCall.KEYS_GET, self._on_keys_get)
        self._sio.on(BridgeCall.KEYS_SET, self._on_keys_set)
        self._sio.on(BridgeCall.KEYS_DELETE, self._on_keys_delete)

        try:
            await self._sio.connect(
                self._url,
                auth={"token": self._token} if self._token else None,
                transports=self._transports,
                socketio_path=SOCKETIO_PATH,
            )
            creds = self._auth.creds
            result = await self._sio.call(
                BridgeCall.SESSION_OPEN,
                {
                    "creds": to_wire(creds.model_dump()) if creds is not None else None,
                    "browser": self._browser,
                    "sync_history": self._sync_history,
                },
                timeout=self._call_timeout,
            )
        except sio_exceptions.SocketIOError as e:
            await self.close()
            raise ConnectionError(f"Could not open bridge session at {self._url}: {e}")

        if isinstance(result, dict) and result.get("error"):
            await self.close()
            raise ConnectionError(f"Bridge refused session: {result['error']}")

    async def close(self) -> None:
        self._closing = True
        if self._sio:
            sio, self._sio = self._sio, None
            await sio.disconnect()

    async def send_message(self, jid: str, payload: dict[str, Any]) -> Any:
        result = await self._call(BridgeCall.MESSAGE_SEND, {"jid": jid, "content": to_wire(payload)})
        if isinstance(result, dict) and result.get("error"):
            raise ConnectionError(f"Send to {jid} failed: {result['error']}")
        return from_wire(result)

    async def request_pairing_code(self, phone_number: str) -> str:
        result = await self._call(BridgeCall.PAIRING_REQUEST, {"phone_number": phone_number})
        if not isinstance(result, dict):
            raise ConnectionError(f"Unexpected pairing response: {result!r}")
        if result.get("error"):
            raise ConnectionError(str(result["error"]))
        return result.get("code", "")

    async def _call(self, event: str, data: dict[str, Any]) -> Any:
        if not self._sio or not self._sio.connected:
            raise ConnectionError("Bridge not connected")
        try:
            return await self._sio.call(event, data, timeout=self._call_timeout)
        except sio_exceptions.TimeoutError:
            raise ConnectionError(f"Timeout waiting for {event} response")
        except sio_exceptions.SocketIOError as e:
            raise ConnectionError(f"Bridge call {event} failed: {e}")

    # -------- Handlers --------

    def _forward(self, event: str):
        async def handler(data: Any = None) -> None:
            self._emit(event, from_wire(data))
        return handler

    async def _on_disconnect(self, *_args: Any) -> None:
        if self._closing:
            return
        logger.warning("Bridge transport dropped")
        self._emit(BridgeEvent.CONNECTION_UPDATE, {
            "connection": "close",
            "error_code": int(DisconnectReason.CONNECTION_LOST),
        })

    async def _on_keys_get(self, data: dict[str, Any]) -> dict[str, Any]:
        return to_wire(self._auth.get(data["type"], data.get("ids") or []))

    async def _on_keys_set(self, data: dict[str, Any]) -> bool:
        self._auth.set(from_wire(data["data"]))
        return True

    async def _on_keys_delete(self, data: dict[str, Any]) -> bool:
        self._auth.delete(data["type"], data.get("ids") or [])
        return True
