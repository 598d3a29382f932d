"""
Result and statistics types for the export pipeline.

Partial failures are values, not exceptions: a failed parent or batch
becomes an entry in these structures, and only fatal or structural
conditions are raised. The orchestrator and coordinator merge these
upward into unit and global totals.
"""

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Optional

from core.errors.classifiers import ErrorClassification, classify_error, remediation_for

REDUCE_BATCH_SIZE_RECOMMENDATION = (
    "Reduce the target batch size (batching.target_bytes) or move the event hub "
    "to a tier with a larger maximum message size."
)


class UnitState(Enum):
    """Lifecycle of one unit's export."""

    AUTHENTICATING = "authenticating"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FAILED_FATAL = "failed_fatal"
    FAILED_TRANSIENT = "failed_transient"


@dataclass
class ExportMetrics:
    """
    Mutable counters for one exporter invocation.

    For flat exporters the unit of processing is a record. For fan-out
    exporters it is a parent (a group, a resource), and record_count holds
    the number of child records gathered across all parents.
    """

    processed: int = 0
    success: int = 0
    failed: int = 0
    record_count: int = 0
    batch_count: int = 0
    failed_batches: int = 0
    total_payload_bytes: int = 0
    oversized_count: int = 0

    def merge(self, other: "ExportMetrics") -> "ExportMetrics":
        """Add other's counters into this accumulator, in place."""
        for f in fields(self):
            setattr(self, f.name, getattr(self, f.name) + getattr(other, f.name))
        return self

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class ErrorInfo:
    """Structured error surfaced in results: message, classification and stage."""

    message: str
    error_type: str
    is_fatal: bool
    is_retryable: bool
    stage: Optional[str] = None
    status_code: Optional[int] = None
    remediation: Optional[str] = None
    exception_type: Optional[str] = None

    @classmethod
    def from_exception(
        cls,
        error: BaseException,
        stage: Optional[str] = None,
        classification: Optional[ErrorClassification] = None,
    ) -> "ErrorInfo":
        classification = classification or classify_error(error)
        return cls(
            message=str(error)[:1000],
            error_type=classification.error_type,
            is_fatal=classification.is_fatal,
            is_retryable=classification.is_retryable,
            stage=stage,
            status_code=classification.http_status_code,
            remediation=remediation_for(classification),
            exception_type=type(error).__name__,
        )

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class ParentOutcome:
    """Outcome of one fan-out parent (one group, one resource)."""

    parent_id: str
    success: bool
    record_count: int = 0
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class SizingWarning:
    """Oversized envelope or 413 rejection. A batch sizing policy signal."""

    kind: str
    entity_type: str
    payload_bytes: int
    record_ids: tuple[str, ...] = ()
    unit_id: Optional[str] = None
    recommendation: str = REDUCE_BATCH_SIZE_RECOMMENDATION

    OVERSIZED_ENVELOPE = "oversized_envelope"
    PAYLOAD_TOO_LARGE = "payload_too_large"

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["record_ids"] = list(self.record_ids)
        return data


@dataclass
class EntityExportResult:
    """Result of one EntityExporter run for one unit."""

    entity_type: str
    success: bool = True
    metrics: ExportMetrics = field(default_factory=ExportMetrics)
    duration_ms: float = 0.0
    sub_type_breakdown: dict[str, int] = field(default_factory=dict)
    failed_parents: list[ParentOutcome] = field(default_factory=list)
    warnings: list[SizingWarning] = field(default_factory=list)
    error: Optional[ErrorInfo] = None

    @property
    def counts_by_outcome(self) -> dict[str, int]:
        return {
            "processed": self.metrics.processed,
            "success": self.metrics.success,
            "failed": self.metrics.failed,
        }

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entity_type": self.entity_type,
            "success": self.success,
            "counts": self.counts_by_outcome,
            "metrics": self.metrics.to_dict(),
            "duration_ms": self.duration_ms,
        }
        if self.sub_type_breakdown:
            data["sub_types"] = dict(self.sub_type_breakdown)
        if self.failed_parents:
            data["failed_parents"] = [
                {
                    "parent_id": p.parent_id,
                    "error": p.error.to_dict() if p.error else None,
                }
                for p in self.failed_parents
            ]
        if self.warnings:
            data["warnings"] = [w.to_dict() for w in self.warnings]
        if self.error:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class UnitExportResult:
    """Result of one unit's export (one tenant or one subscription)."""

    unit_id: str
    unit_kind: str
    unit_name: str = ""
    state: UnitState = UnitState.AUTHENTICATING
    metrics: ExportMetrics = field(default_factory=ExportMetrics)
    entities: list[EntityExportResult] = field(default_factory=list)
    error: Optional[ErrorInfo] = None
    duration_ms: float = 0.0
    previous_export: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state == UnitState.COMPLETED

    @property
    def warnings(self) -> list[SizingWarning]:
        return [w for entity in self.entities for w in entity.warnings]

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "unit_id": self.unit_id,
            "unit_kind": self.unit_kind,
            "unit_name": self.unit_name,
            "success": self.success,
            "state": self.state.value,
            "metrics": self.metrics.to_dict(),
            "duration_ms": self.duration_ms,
            "entities": [e.to_dict() for e in self.entities],
        }
        if self.previous_export:
            data["previous_export"] = self.previous_export
        if self.error:
            data["error"] = self.error.to_dict()
        return data


@dataclass
class ExportResult:
    """Top-level result of a run across all units."""

    export_id: str
    units: list[UnitExportResult] = field(default_factory=list)
    totals: ExportMetrics = field(default_factory=ExportMetrics)
    warnings: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: float = 0.0
    error: Optional[ErrorInfo] = None

    @property
    def total_units(self) -> int:
        return len(self.units)

    @property
    def failed_units(self) -> int:
        return sum(1 for u in self.units if not u.success)

    @property
    def success(self) -> bool:
        return self.error is None and self.failed_units == 0

    @property
    def http_status(self) -> int:
        return 200 if self.success else 500

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "export_id": self.export_id,
            "total_units": self.total_units,
            "failed_units": self.failed_units,
            "totals": self.totals.to_dict(),
            "duration_ms": self.duration_ms,
            "units": [u.to_dict() for u in self.units],
        }
        if self.warnings:
            data["warnings"] = self.warnings
        if self.error:
            data["error"] = self.error.to_dict()
        elif self.failed_units:
            first_failure = next(u for u in self.units if not u.success)
            if first_failure.error:
                data["error"] = first_failure.error.to_dict()
        return data


__all__ = [
    "REDUCE_BATCH_SIZE_RECOMMENDATION",
    "UnitState",
    "ExportMetrics",
    "ErrorInfo",
    "ParentOutcome",
    "SizingWarning",
    "EntityExportResult",
    "UnitExportResult",
    "ExportResult",
]
