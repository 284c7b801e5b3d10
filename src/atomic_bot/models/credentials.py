"""
Credentials — this device's identity and registration record.

The protocol library owns the shape; only `registered` and `me` are read here.
Every other field is kept as-is so nothing is lost on a round trip.
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict


class Credentials(BaseModel):
    model_config = ConfigDict(extra="allow")

    registered: bool = False
    me: Optional[dict[str, Any]] = None

    def merged(self, patch: Mapping[str, Any]) -> "Credentials":
        """Shallow merge of a `creds.update` patch; later keys win."""
        return Credentials.model_validate({**self.model_dump(), **patch})

    @property
    def account_id(self) -> Optional[str]:
        if self.me:
            return self.me.get("id")
        return None
