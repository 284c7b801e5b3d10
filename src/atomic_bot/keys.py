"""
KeyBucket store — in-memory key material read and written by the protocol library.

Layout is ``key_type -> key_id -> key_data``. Pre-keys, sessions, sender keys and
app-state sync keys each live in their own bucket.
"""

from typing import Any, Iterable, Mapping, Optional


class KeyBucketStore:
    def __init__(self, buckets: Optional[Mapping[str, Mapping[str, Any]]] = None):
        self._buckets: dict[str, dict[str, Any]] = {}
        if buckets:
            for key_type, entries in buckets.items():
                self._buckets[key_type] = dict(entries)

    def get(self, key_type: str, ids: Iterable[str]) -> dict[str, Any]:
        """Return the entries that exist. Missing ids are omitted, not an error."""
        bucket = self._buckets.get(key_type)
        if not bucket:
            return {}
        return {key_id: bucket[key_id] for key_id in ids if key_id in bucket}

    def set(self, patch: Mapping[str, Mapping[str, Any]]) -> None:
        """Merge each nested mapping into its bucket. A ``None`` value removes the id."""
        for key_type, entries in patch.items():
            bucket = self._buckets.setdefault(key_type, {})
            for key_id, value in entries.items():
                if value is None:
                    bucket.pop(key_id, None)
                else:
                    bucket[key_id] = value

    def delete(self, key_type: str, ids: Iterable[str]) -> bool:
        """Remove ids if present. Returns True when something was actually removed."""
        bucket = self._buckets.get(key_type)
        if not bucket:
            return False
        removed = False
        for key_id in ids:
            if bucket.pop(key_id, None) is not None:
                removed = True
        return removed

    def key_types(self) -> list[str]:
        return list(self._buckets)

    def count(self, key_type: Optional[str] = None) -> int:
        if key_type is not None:
            return len(self._buckets.get(key_type, {}))
        return sum(len(b) for b in self._buckets.values())

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {key_type: dict(bucket) for key_type, bucket in self._buckets.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeyBucketStore):
            return NotImplemented
        # Empty buckets carry no data
        mine = {k: v for k, v in self._buckets.items() if v}
        theirs = {k: v for k, v in other._buckets.items() if v}
        return mine == theirs

    def __len__(self) -> int:
        return self.count()

    def __repr__(self) -> str:
        sizes = ", ".join(f"{k}={len(v)}" for k, v in self._buckets.items())
        return f"KeyBucketStore({sizes})"
