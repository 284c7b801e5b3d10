"""
atomic-bot error types.
"""

from typing import Any, Optional


class AtomicBotError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ConfigurationError(AtomicBotError):
    """A required setting or secret is missing or unusable. Fatal at startup."""

    def __init__(self, message: str, code: str = "config_error"):
        super().__init__(code, message)


class MalformedConfigurationError(AtomicBotError):
    """Configuration string present but undecodable. Recovered by re-pairing."""

    def __init__(self, message: str, code: str = "malformed_configuration", details: Optional[dict[str, Any]] = None):
        super().__init__(code, message, details)


class MalformedSessionError(MalformedConfigurationError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, code="malformed_session", details=details)


class PairingRequestError(AtomicBotError):
    def __init__(self, message: str, code: str = "pairing_error"):
        super().__init__(code, message)


class ConnectionError(AtomicBotError):
    def __init__(self, message: str):
        super().__init__("connection_error", message)


class RecoverableDisconnect(AtomicBotError):
    """Session closed for any reason other than logout. Retried after a delay."""

    def __init__(self, error_code: Optional[int], message: str = "connection closed"):
        super().__init__("recoverable_disconnect", message, {"error_code": error_code})
        self.error_code = error_code


class FatalLogout(AtomicBotError):
    """The remote revoked this device's link. Never retried."""

    def __init__(self, error_code: Optional[int], message: str = "logged out"):
        super().__init__("fatal_logout", message, {"error_code": error_code})
        self.error_code = error_code
