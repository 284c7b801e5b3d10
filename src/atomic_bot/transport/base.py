"""
The seam between the lifecycle manager and the external protocol library.
"""

from typing import Any, Callable, Iterable, Mapping, Optional, Protocol

from atomic_bot.models.credentials import Credentials

# (event_name, data). Called in the order the protocol library produced the events.
EventEmitter = Callable[[str, Any], None]


class AuthState(Protocol):
    """Read/write capability over the session. Implemented by CredentialProvider."""

    @property
    def creds(self) -> Optional[Credentials]: ...

    def get(self, key_type: str, ids: Iterable[str]) -> dict[str, Any]: ...

    def set(self, patch: Mapping[str, Mapping[str, Any]]) -> None: ...

    def delete(self, key_type: str, ids: Iterable[str]) -> None: ...


class ProtocolSocket(Protocol):
    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def send_message(self, jid: str, payload: dict[str, Any]) -> Any: ...

    async def request_pairing_code(self, phone_number: str) -> str: ...


SocketFactory = Callable[[AuthState, EventEmitter], ProtocolSocket]
