"""
Pairing flow — request a human-enterable linking code when no registered session exists.

Runs at most once per process. Failures are logged for the operator and never
retried here; retrying means restarting the process.
"""

import asyncio
import logging
import re
from typing import Optional

from atomic_bot.errors import PairingRequestError
from atomic_bot.transport.base import ProtocolSocket

logger = logging.getLogger(__name__)

DEFAULT_GRACE_S = 3.0
CODE_VALIDITY_S = 90
_STRIP = re.compile(r"[\s\-\.\(\)]")
_DIGITS = re.compile(r"^[1-9]\d{6,14}$")


def normalize_phone_number(raw: str) -> str:
    """'+1 (415) 555-0100' -> '14155550100'. The protocol wants bare digits."""
    number = _STRIP.sub("", raw or "")
    if number.startswith("+"):
        number = number[1:]
    if not _DIGITS.match(number):
        raise PairingRequestError(f"Invalid phone number {raw!r}: expected E.164 digits, e.g. +14155550100")
    return number


async def request_linking_code(sock: ProtocolSocket, phone_number: str) -> str:
    number = normalize_phone_number(phone_number)
    try:
        code = await sock.request_pairing_code(number)
    except PairingRequestError:
        raise
    except Exception as e:
        raise PairingRequestError(f"Failed to request pairing code: {e}")
    if not code:
        raise PairingRequestError("Remote returned an empty pairing code")
    return code


class PairingFlow:
    def __init__(self, phone_number: Optional[str], grace_s: float = DEFAULT_GRACE_S):
        self._phone_number = phone_number
        self._grace_s = grace_s
        self._started = False
        self.code: Optional[str] = None

    @property
    def started(self) -> bool:
        return self._started

    async def run(self, sock: ProtocolSocket, ready: Optional[asyncio.Event] = None) -> Optional[str]:
        """Request a code once. Returns the code, or None when skipped or failed."""
        if self._started:
            return None
        self._started = True

        logger.info("No valid session found! Generating a new pairing code.")
        if not self._phone_number:
            logger.error(
                "No BAILEYS_SESSION and PHONE_NUMBER is not set. "
                "Cannot generate a pairing code automatically. Set PHONE_NUMBER and restart."
            )
            return None

        logger.info(f"Requesting pairing code for phone number: {self._phone_number}")
        await self._wait_ready(ready)
        try:
            code = await request_linking_code(sock, self._phone_number)
        except PairingRequestError as e:
            logger.error(f"Failed to request pairing code: {e}")
            logger.error("This can happen if the phone number is invalid or the service is rate-limiting.")
            return None

        self.code = code
        logger.info(f"Your pair code (valid for ~{CODE_VALIDITY_S} seconds): {code}")
        logger.info(
            "On your phone: Settings > Linked Devices > Link a Device > "
            "Link with phone number instead. Then enter this code."
        )
        logger.info("Once connected, a new BAILEYS_SESSION string will be printed. Save it.")
        return code

    async def _wait_ready(self, ready: Optional[asyncio.Event]) -> None:
        if ready is None:
            await asyncio.sleep(self._grace_s)
            return
        try:
            await asyncio.wait_for(ready.wait(), timeout=self._grace_s)
        except asyncio.TimeoutError:
            logger.debug(f"Transport did not signal readiness within {self._grace_s}s; requesting anyway")
