"""
Process settings, read from the environment or a `.env` file.
"""

from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from atomic_bot.errors import ConfigurationError

DEFAULT_SOCKET_FACTORY = "atomic_bot.transport.socketio:BridgeSocket"


class Settings(BaseSettings):
    """
    Session:
        baileys_session (env: BAILEYS_SESSION) — base64 session blob from a previous run
        phone_number (env: PHONE_NUMBER) — E.164 number, used only for pairing

    Collaborator secret:
        gemini_api_key (env: GEMINI_API_KEY) — required at startup

    Persistence (the log sink is always on):
        session_file (env: SESSION_FILE)
        session_sink_url / session_sink_token (env: SESSION_SINK_URL / SESSION_SINK_TOKEN)
    """

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    baileys_session: Optional[str] = None
    phone_number: Optional[str] = None
    gemini_api_key: Optional[str] = None

    bridge_url: str = "http://127.0.0.1:3000"
    bridge_token: Optional[str] = None
    socket_factory: str = DEFAULT_SOCKET_FACTORY

    reconnect_delay: float = 5.0
    reconnect_factor: float = 2.0
    reconnect_max_delay: float = 60.0
    pairing_grace: float = 3.0

    session_file: Optional[Path] = None
    session_sink_url: Optional[str] = None
    session_sink_token: Optional[str] = None

    log_level: str = "INFO"
    log_format: Literal["rich", "json"] = "rich"

    def validate_required(self) -> None:
        """Start-up checks that must pass before any connection is attempted."""
        if not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is required but not set. "
                "Define it in your environment or .env file."
            )
        if self.reconnect_delay <= 0:
            raise ConfigurationError("RECONNECT_DELAY must be positive")
