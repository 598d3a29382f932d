"""
Correlation context threaded through every stage of an export run.

One CorrelationContext is created per top-level run. Sub-scopes (unit,
stage, entity type, parent id) never mutate it; they derive a child with
extra keys. The operation id doubles as the export id stamped on every
event envelope.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass(frozen=True)
class CorrelationContext:
    """
    Immutable correlation identity for one export run.

    Attributes:
        operation_id: Opaque unique token for the run
        operation_name: Human-readable run name (e.g. "ScheduledExport")
        start_time: UTC time the run started
        keys: Sub-scope keys added by child() (unit_id, stage, ...)
    """

    operation_id: str
    operation_name: str
    start_time: datetime
    keys: dict[str, str] = field(default_factory=dict, hash=False, compare=False)

    @classmethod
    def new(
        cls,
        operation_name: str,
        operation_id: Optional[str] = None,
        **keys: Any,
    ) -> "CorrelationContext":
        return cls(
            operation_id=operation_id or str(uuid.uuid4()),
            operation_name=operation_name,
            start_time=datetime.now(timezone.utc),
            keys={k: str(v) for k, v in keys.items() if v is not None},
        )

    def child(self, **keys: Any) -> "CorrelationContext":
        """Clone with additional sub-scope keys. The receiver is unchanged."""
        merged = dict(self.keys)
        merged.update({k: str(v) for k, v in keys.items() if v is not None})
        return replace(self, keys=merged)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.keys.get(key, default)

    @property
    def export_id(self) -> str:
        return self.operation_id

    def elapsed_ms(self) -> float:
        delta = datetime.now(timezone.utc) - self.start_time
        return round(delta.total_seconds() * 1000, 2)

    def log_fields(self) -> dict[str, str]:
        """Fields suitable for logging extras."""
        fields = {
            "correlation_id": self.operation_id,
            "operation": self.operation_name,
        }
        fields.update(self.keys)
        return fields


def monotonic_ms() -> float:
    """Monotonic clock in milliseconds for duration measurements."""
    return time.perf_counter() * 1000


__all__ = ["CorrelationContext", "monotonic_ms"]
