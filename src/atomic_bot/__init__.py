"""
atomic-bot — session store and connection lifecycle for a multi-device messaging client.

Keeps the whole cryptographic session in one portable string and keeps the
connection alive across transient disconnects.
"""

from atomic_bot.client import AtomicBot
from atomic_bot.auth import CredentialProvider
from atomic_bot.connection import ConnectionManager, ConnectionState, ReconnectPolicy, EXIT_LOGGED_OUT
from atomic_bot.errors import (
    AtomicBotError,
    ConfigurationError,
    MalformedConfigurationError,
    MalformedSessionError,
    PairingRequestError,
    ConnectionError,
    RecoverableDisconnect,
    FatalLogout,
)
from atomic_bot.keys import KeyBucketStore
from atomic_bot.models.events import DisconnectReason, InboundMessage

__version__ = "0.1.0"
__all__ = [
    "AtomicBot",
    "CredentialProvider",
    "ConnectionManager",
    "ConnectionState",
    "ReconnectPolicy",
    "EXIT_LOGGED_OUT",
    "AtomicBotError",
    "ConfigurationError",
    "MalformedConfigurationError",
    "MalformedSessionError",
    "PairingRequestError",
    "ConnectionError",
    "RecoverableDisconnect",
    "FatalLogout",
    "KeyBucketStore",
    "DisconnectReason",
    "InboundMessage",
]
