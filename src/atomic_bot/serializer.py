"""
Session serializer — (Credentials, KeyBucketStore) <-> one portable text blob.

The blob is base64 of UTF-8 JSON ``{"creds": ..., "keys": ...}``. Bytes are
written in Buffer-JSON form, ``{"type": "Buffer", "data": "<base64>"}``, which is
what the protocol library's own reviver understands. The older
``{"type": "Buffer", "data": [1, 2, 3]}`` form is accepted on the way in.
"""

import base64
import binascii
import json
from typing import Any, Optional

from pydantic import ValidationError

from atomic_bot.errors import MalformedSessionError
from atomic_bot.keys import KeyBucketStore
from atomic_bot.models.credentials import Credentials

BUFFER_TYPE = "Buffer"


def to_wire(value: Any) -> Any:
    """Replace bytes anywhere inside `value` with Buffer-JSON objects."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return {"type": BUFFER_TYPE, "data": base64.b64encode(bytes(value)).decode("ascii")}
    if isinstance(value, dict):
        return {k: to_wire(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_wire(v) for v in value]
    return value


def from_wire(value: Any) -> Any:
    """Inverse of `to_wire`."""
    if isinstance(value, dict):
        if value.get("type") == BUFFER_TYPE and "data" in value and len(value) == 2:
            data = value["data"]
            if isinstance(data, str):
                return base64.b64decode(data, validate=True)
            if isinstance(data, list):
                return bytes(data)
        return {k: from_wire(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_wire(v) for v in value]
    return value


def encode(creds: Optional[Credentials], keys: KeyBucketStore) -> str:
    payload = {
        "creds": to_wire(creds.model_dump()) if creds is not None else None,
        "keys": to_wire(keys.to_dict()),
    }
    text = json.dumps(payload, separators=(",", ":"))
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode(blob: str) -> tuple[Optional[Credentials], KeyBucketStore]:
    """Raises MalformedSessionError for anything that is not a well-formed blob."""
    try:
        raw = base64.b64decode(blob.strip(), validate=True)
        data = json.loads(raw.decode("utf-8"))
    except (binascii.Error, ValueError, AttributeError, RecursionError) as e:
        raise MalformedSessionError(f"Session blob is not base64-encoded JSON: {e}")

    if not isinstance(data, dict) or "creds" not in data or "keys" not in data:
        raise MalformedSessionError("Session blob must contain 'creds' and 'keys'")

    keys = data["keys"]
    if not isinstance(keys, dict) or not all(isinstance(v, dict) for v in keys.values()):
        raise MalformedSessionError("Session blob 'keys' must map key types to mappings")

    try:
        creds_raw = from_wire(data["creds"])
        keys_raw = from_wire(keys)
    except (binascii.Error, ValueError, TypeError, RecursionError) as e:
        raise MalformedSessionError(f"Session blob has a corrupt buffer: {e}")

    if creds_raw is None:
        creds = None
    elif isinstance(creds_raw, dict):
        try:
            creds = Credentials.model_validate(creds_raw)
        except ValidationError as e:
            raise MalformedSessionError("Session blob 'creds' is invalid", details={"errors": e.errors()})
    else:
        raise MalformedSessionError("Session blob 'creds' must be an object or null")

    return creds, KeyBucketStore(keys_raw)
