"""
Persistence sinks — where a new session blob goes after every credential change.

`LogSink` is the default: it frames the blob with delimiter lines so an operator
can copy it into the BAILEYS_SESSION setting before the next start.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, Sequence

import httpx

if TYPE_CHECKING:
    from atomic_bot.settings import Settings

logger = logging.getLogger(__name__)

BLOB_HEADER = "--- NEW BAILEYS SESSION STRING ---"
BLOB_FOOTER = "----------------------------------"
BLOB_INSTRUCTIONS = (
    "If the bot just authenticated or the session changed, "
    "update your BAILEYS_SESSION setting with this:"
)


class PersistenceSink(Protocol):
    def persist(self, blob: str) -> None: ...


class LogSink:
    def __init__(self, log: Optional[logging.Logger] = None):
        self._log = log or logger

    def persist(self, blob: str) -> None:
        self._log.info(BLOB_HEADER)
        self._log.info(BLOB_INSTRUCTIONS)
        self._log.info(blob)
        self._log.info(BLOB_FOOTER)


class MemorySink:
    """Keeps every blob it receives. Used by tests and by `atomic session` tooling."""

    def __init__(self) -> None:
        self.blobs: list[str] = []

    @property
    def latest(self) -> Optional[str]:
        return self.blobs[-1] if self.blobs else None

    def persist(self, blob: str) -> None:
        self.blobs.append(blob)


class FileSink:
    """Writes the blob to a file, replacing it atomically."""

    def __init__(self, path: Path):
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def persist(self, blob: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=f".{self._path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(blob)
            os.replace(tmp, self._path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise

    def read(self) -> Optional[str]:
        try:
            return self._path.read_text(encoding="utf-8").strip() or None
        except FileNotFoundError:
            return None


class HttpSink:
    """PUTs the blob to a key-value endpoint.

    `persist()` is called from synchronous key-store code, so the request runs as
    a background task. Only the newest blob is sent; intermediate ones are skipped.
    """

    def __init__(self, url: str, token: Optional[str] = None, client: Optional[httpx.AsyncClient] = None):
        self._url = url
        headers = {"User-Agent": "atomic-bot/0.1.0", "Content-Type": "text/plain"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(timeout=30.0)
        self._headers = headers
        self._latest: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    def persist(self, blob: str) -> None:
        self._latest = blob
        if self._task is None or self._task.done():
            loop = asyncio.get_running_loop()
            self._task = loop.create_task(self._flush())

    async def _flush(self) -> None:
        while self._latest is not None:
            blob, self._latest = self._latest, None
            try:
                resp = await self._client.put(self._url, content=blob, headers=self._headers)
            except httpx.HTTPError as e:
                logger.error(f"Session upload to {self._url} failed: {e}")
                continue
            except Exception as e:
                logger.error(f"Session upload to {self._url} failed: {e}", exc_info=True)
                continue
            if resp.status_code >= 400:
                logger.error(f"Session upload to {self._url} failed: HTTP {resp.status_code}: {resp.text[:200]}")

    async def drain(self) -> None:
        """Wait for a pending upload to finish."""
        if self._task is not None:
            await self._task

    async def close(self) -> None:
        await self.drain()
        await self._client.aclose()


class FanoutSink:
    """Sends each blob to several sinks. One failing sink does not stop the others."""

    def __init__(self, sinks: Sequence[PersistenceSink]):
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[PersistenceSink]:
        return list(self._sinks)

    def persist(self, blob: str) -> None:
        for sink in self._sinks:
            try:
                sink.persist(blob)
            except Exception as e:
                logger.error(f"{type(sink).__name__} failed to persist session: {e}", exc_info=True)


def build_sink(settings: "Settings") -> PersistenceSink:
    sinks: list[PersistenceSink] = [LogSink()]
    if settings.session_file:
        sinks.append(FileSink(settings.session_file))
    if settings.session_sink_url:
        sinks.append(HttpSink(settings.session_sink_url, token=settings.session_sink_token))
    if len(sinks) == 1:
        return sinks[0]
    return FanoutSink(sinks)
