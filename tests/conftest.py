"""Shared fakes: a protocol socket that records calls and lets tests emit events."""

import asyncio
from typing import Any, Optional

import pytest

from atomic_bot.errors import ConnectionError
from atomic_bot.settings import Settings


class FakeSocket:
    def __init__(self, auth, emit, *, fail_connect: bool = False,
                 pairing_code: str = "ABCD1234", pairing_error: Optional[Exception] = None):
        self.auth = auth
        self.emit = emit
        self.fail_connect = fail_connect
        self.pairing_code = pairing_code
        self.pairing_error = pairing_error
        self.connected = False
        self.closed = False
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.pairing_requests: list[str] = []

    async def connect(self) -> None:
        if self.fail_connect:
            raise ConnectionError("bridge refused connection")
        self.connected = True

    async def close(self) -> None:
        self.connected = False
        self.closed = True

    async def send_message(self, jid: str, payload: dict[str, Any]) -> Any:
        self.sent.append((jid, payload))
        return {"status": "sent"}

    async def request_pairing_code(self, phone_number: str) -> str:
        self.pairing_requests.append(phone_number)
        if self.pairing_error is not None:
            raise self.pairing_error
        return self.pairing_code

    # Test helpers
    def update(self, **data: Any) -> None:
        self.emit("connection.update", data)


def fake_socket(auth, emit) -> FakeSocket:
    return FakeSocket(auth, emit)


class FakeSocketFactory:
    def __init__(self, fail_first: int = 0, **socket_kwargs: Any):
        self.fail_first = fail_first
        self.socket_kwargs = socket_kwargs
        self.sockets: list[FakeSocket] = []

    def __call__(self, auth, emit) -> FakeSocket:
        fail = len(self.sockets) < self.fail_first
        sock = FakeSocket(auth, emit, fail_connect=fail, **self.socket_kwargs)
        self.sockets.append(sock)
        return sock

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def settle(rounds: int = 20) -> None:
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "gemini_api_key": "test-key",
        "baileys_session": None,
        "phone_number": None,
        "session_file": None,
        "session_sink_url": None,
        "pairing_grace": 0.01,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def factory() -> FakeSocketFactory:
    return FakeSocketFactory()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
