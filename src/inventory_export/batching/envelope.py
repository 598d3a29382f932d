"""Event envelopes and batches as sent to the event hub."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from core.utils.json_serializers import dumps_compact


@dataclass
class EventEnvelope:
    """
    One cleaned record plus export metadata.

    The wire shape uses the camelCase keys downstream ingestion maps on.
    Serialization is computed once and cached; size accounting and the
    transmitted payload therefore always agree.
    """

    odata_context: str
    resource_type: str
    data: dict[str, Any]
    unit_id: str
    export_id: str
    resource_group: Optional[str] = None
    parent_id: Optional[str] = None
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="seconds")
    )
    _encoded: Optional[bytes] = field(default=None, init=False, repr=False, compare=False)

    @property
    def record_id(self) -> str:
        """Best identifier for diagnostics: ARM id, directory object id, or type."""
        for key in ("id", "objectId", "name"):
            value = self.data.get(key)
            if value:
                return str(value)
        return f"{self.resource_type}@{self.parent_id or self.unit_id}"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "odataContext": self.odata_context,
            "resourceType": self.resource_type,
            "unitId": self.unit_id,
            "exportId": self.export_id,
            "timestamp": self.timestamp,
        }
        if self.resource_group is not None:
            payload["resourceGroup"] = self.resource_group
        if self.parent_id is not None:
            payload["parentId"] = self.parent_id
        payload["data"] = self.data
        return payload

    def encode(self) -> bytes:
        if self._encoded is None:
            self._encoded = dumps_compact(self.to_dict())
        return self._encoded

    @property
    def size(self) -> int:
        return len(self.encode())


@dataclass
class Batch:
    """
    Ordered envelopes sent as one event hub message (a JSON array).

    size_bytes is the exact byte length of to_payload(): the brackets, each
    encoded envelope, and one comma between neighbours.
    """

    entity_type: str = ""
    envelopes: list[EventEnvelope] = field(default_factory=list)
    size_bytes: int = 2
    oversized: bool = False
    sequence: int = 0

    def __len__(self) -> int:
        return len(self.envelopes)

    @property
    def is_empty(self) -> bool:
        return not self.envelopes

    def projected_size(self, envelope_size: int) -> int:
        """Batch size if an envelope of envelope_size bytes were appended."""
        if self.is_empty:
            return 2 + envelope_size
        return self.size_bytes + 1 + envelope_size

    def append(self, envelope: EventEnvelope, envelope_size: int) -> None:
        self.size_bytes = self.projected_size(envelope_size)
        self.envelopes.append(envelope)

    @property
    def record_ids(self) -> list[str]:
        return [e.record_id for e in self.envelopes]

    def to_payload(self) -> bytes:
        return b"[" + b",".join(e.encode() for e in self.envelopes) + b"]"


__all__ = ["EventEnvelope", "Batch"]
