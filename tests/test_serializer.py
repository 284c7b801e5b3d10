import base64
import json

import pytest

from atomic_bot import serializer
from atomic_bot.errors import MalformedSessionError
from atomic_bot.keys import KeyBucketStore
from atomic_bot.models.credentials import Credentials


def _b64json(obj) -> str:
    return base64.b64encode(json.dumps(obj).encode("utf-8")).decode("ascii")


DEEPLY_NESTED = base64.b64encode(b"[" * 100000 + b"]" * 100000).decode("ascii")


def _sample() -> tuple[Credentials, KeyBucketStore]:
    creds = Credentials(
        registered=True,
        me={"id": "14155550100:7@s.whatsapp.net", "name": "Atomic"},
        noiseKey={"private": b"\x01\x02", "public": b"\xff" * 32},
        registrationId=4242,
        advSecretKey="c2VjcmV0",
    )
    keys = KeyBucketStore({
        "pre-key": {"1": {"private": b"\x00\x01", "public": b"\x02\x03"}},
        "session": {"14155550100.0": b"\x10\x20\x30"},
        "app-state-sync-key": {"AAAA": {"keyData": b"k", "timestamp": "1700000000"}},
    })
    return creds, keys


def test_round_trip_is_value_identical():
    creds, keys = _sample()
    decoded_creds, decoded_keys = serializer.decode(serializer.encode(creds, keys))
    assert decoded_creds == creds
    assert decoded_keys == keys
    assert decoded_creds.noiseKey["public"] == b"\xff" * 32


def test_round_trip_without_credentials():
    keys = KeyBucketStore({"pre-key": {"5": b"abc"}})
    creds, decoded = serializer.decode(serializer.encode(None, keys))
    assert creds is None
    assert decoded == keys


def test_key_order_is_not_significant():
    creds, _ = _sample()
    a = KeyBucketStore({"x": {"1": b"a", "2": b"b"}, "y": {"3": b"c"}})
    b = KeyBucketStore({"y": {"3": b"c"}, "x": {"2": b"b", "1": b"a"}})
    assert serializer.decode(serializer.encode(creds, a)) == serializer.decode(serializer.encode(creds, b))


def test_bytes_use_buffer_json():
    blob = serializer.encode(None, KeyBucketStore({"session": {"a": b"\x01\x02"}}))
    raw = json.loads(base64.b64decode(blob))
    assert raw["keys"]["session"]["a"] == {"type": "Buffer", "data": base64.b64encode(b"\x01\x02").decode()}


def test_legacy_integer_array_buffers_decode():
    blob = _b64json({
        "creds": {"registered": True, "signedIdentityKey": {"public": {"type": "Buffer", "data": [1, 2, 3]}}},
        "keys": {"session": {"a": {"type": "Buffer", "data": [255, 0]}}},
    })
    creds, keys = serializer.decode(blob)
    assert creds.signedIdentityKey["public"] == b"\x01\x02\x03"
    assert keys.get("session", ["a"]) == {"a": b"\xff\x00"}


@pytest.mark.parametrize("blob", [
    "not-valid-base64",
    base64.b64encode(b"definitely not json").decode(),
    base64.b64encode(b"\xff\xfe\xfd").decode(),
    _b64json([1, 2, 3]),
    _b64json({"creds": None}),
    _b64json({"keys": {}}),
    _b64json({"creds": None, "keys": []}),
    _b64json({"creds": None, "keys": {"session": "flat"}}),
    _b64json({"creds": 5, "keys": {}}),
    _b64json({"creds": {"registered": "maybe"}, "keys": {}}),
    _b64json({"creds": None, "keys": {"s": {"a": {"type": "Buffer", "data": "***"}}}}),
    _b64json({"creds": None, "keys": {"s": {"a": {"type": "Buffer", "data": [300]}}}}),
    DEEPLY_NESTED,
])
def test_malformed_blobs_raise(blob):
    with pytest.raises(MalformedSessionError):
        serializer.decode(blob)


def test_wire_helpers_are_inverse():
    value = {"a": [b"x", {"b": b"y"}], "c": 1, "d": None}
    assert serializer.from_wire(serializer.to_wire(value)) == value
