"""
Credential provider — owns Credentials and the KeyBucket store for the process.

Bootstraps both from the BAILEYS_SESSION string and exposes the get/set/delete
key-store contract the protocol library uses. Every mutation re-encodes the whole
session and hands it to the persistence sink.
"""

import logging
from typing import Any, Iterable, Mapping, Optional

from atomic_bot import serializer
from atomic_bot.errors import MalformedConfigurationError
from atomic_bot.keys import KeyBucketStore
from atomic_bot.models.credentials import Credentials
from atomic_bot.sinks import LogSink, PersistenceSink

logger = logging.getLogger(__name__)


def load(raw_config: Optional[str]) -> tuple[Optional[Credentials], KeyBucketStore]:
    """Decode the configuration string. Never raises: a bad value means re-pairing."""
    if not raw_config:
        logger.warning("BAILEYS_SESSION not set. A new session will be generated.")
        return None, KeyBucketStore()
    try:
        creds, keys = serializer.decode(raw_config)
    except MalformedConfigurationError as e:
        logger.error(f"Could not decode BAILEYS_SESSION: {e}")
        logger.warning("Falling back to new authentication (this will require a new pair code).")
        return None, KeyBucketStore()
    logger.info(f"Loaded session from BAILEYS_SESSION ({keys.count()} keys, registered={bool(creds and creds.registered)}).")
    return creds, keys


class CredentialProvider:
    def __init__(
        self,
        creds: Optional[Credentials] = None,
        keys: Optional[KeyBucketStore] = None,
        sink: Optional[PersistenceSink] = None,
    ):
        self._creds = creds
        self._keys = keys if keys is not None else KeyBucketStore()
        self._sink: PersistenceSink = sink or LogSink()

    @classmethod
    def from_config(cls, raw_config: Optional[str], sink: Optional[PersistenceSink] = None) -> "CredentialProvider":
        creds, keys = load(raw_config)
        return cls(creds, keys, sink)

    @property
    def creds(self) -> Optional[Credentials]:
        return self._creds

    @property
    def keys(self) -> KeyBucketStore:
        return self._keys

    @property
    def registered(self) -> bool:
        return self._creds is not None and self._creds.registered

    def set_sink(self, sink: PersistenceSink) -> None:
        self._sink = sink

    # -------- Key store contract --------

    def get(self, key_type: str, ids: Iterable[str]) -> dict[str, Any]:
        return self._keys.get(key_type, ids)

    def set(self, patch: Mapping[str, Mapping[str, Any]]) -> None:
        self._keys.set(patch)
        self.persist()

    def delete(self, key_type: str, ids: Iterable[str]) -> None:
        if self._keys.delete(key_type, ids):
            self.persist()

    def update_creds(self, patch: Mapping[str, Any]) -> None:
        """Apply a creds.update patch from the protocol library."""
        base = self._creds or Credentials()
        self._creds = base.merged(patch)
        self.persist()

    # -------- Persistence --------

    def blob(self) -> str:
        return serializer.encode(self._creds, self._keys)

    def persist(self) -> None:
        blob = self.blob()
        try:
            self._sink.persist(blob)
        except Exception as e:
            # The protocol library must never see a sink failure
            logger.error(f"Failed to persist session blob: {e}", exc_info=True)
