"""
Protocol events and close codes.

Event names match the ones the protocol library emits on its event bus.
"""

from enum import IntEnum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class BridgeEvent:
    """Server -> client events."""
    CONNECTION_UPDATE = "connection.update"
    CREDS_UPDATE = "creds.update"
    MESSAGES_UPSERT = "messages.upsert"


class BridgeCall:
    """Request/ack calls. `KEYS_*` are issued by the bridge, the rest by us."""
    KEYS_GET = "keys.get"
    KEYS_SET = "keys.set"
    KEYS_DELETE = "keys.delete"
    SESSION_OPEN = "session.open"
    MESSAGE_SEND = "message.send"
    PAIRING_REQUEST = "pairing.request"


class DisconnectReason(IntEnum):
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


class ConnectionUpdate(BaseModel):
    """connection.update payload"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    connection: Optional[Literal["open", "connecting", "close"]] = None
    error_code: Optional[int] = Field(default=None, alias="errorCode")
    qr: Optional[str] = None
    is_new_login: Optional[bool] = None

    @property
    def logged_out(self) -> bool:
        return self.error_code == DisconnectReason.LOGGED_OUT


class InboundMessage(BaseModel):
    """A message handed to the command-handling collaborator. Bodies are not interpreted."""
    from_jid: str
    is_group: bool
    type: str
    body: str = ""
    raw: dict[str, Any] = {}


def _extract_body(msg_type: str, content: dict[str, Any]) -> str:
    if msg_type == "conversation":
        return content.get("conversation") or ""
    if msg_type in ("imageMessage", "videoMessage"):
        media = content.get(msg_type) or {}
        return media.get("caption") or ""
    if msg_type == "extendedTextMessage":
        return (content.get(msg_type) or {}).get("text") or ""
    return ""


def parse_upsert(data: Any) -> list[InboundMessage]:
    """messages.upsert payload -> inbound messages, in delivery order.

    Drops messages without content and messages sent by this device.
    """
    if not isinstance(data, dict):
        return []
    result: list[InboundMessage] = []
    for msg in data.get("messages") or []:
        if not isinstance(msg, dict):
            continue
        content = msg.get("message")
        if not content or not isinstance(content, dict):
            continue
        key = msg.get("key") or {}
        if key.get("fromMe"):
            continue
        from_jid = key.get("remoteJid")
        if not from_jid:
            continue
        msg_type = next(iter(content))
        result.append(InboundMessage(
            from_jid=from_jid,
            is_group=from_jid.endswith("@g.us"),
            type=msg_type,
            body=_extract_body(msg_type, content),
            raw=msg,
        ))
    return result
