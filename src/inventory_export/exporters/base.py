"""
Entity exporter template.

Every exporter follows the same pipeline for one entity type of one unit:

    PagedFetcher -> clean_record -> SizeAwareBatcher -> BatchSender

Subclasses implement export() and call emit() per record. Fan-out
exporters (one request per parent group or resource) implement parents()
and export_parent() instead and get per-parent failure isolation,
jittered pacing and progress events from FanOutExporter.

Failure policy:
    - Fatal errors (auth, permission, missing target) escaping export() are
      re-raised after the open batch is flushed, unless the sender itself
      raised them.
    - A failed parent or a failed batch is counted and skipped. Inside a
      fan-out only sink failures and rejected credentials stop the loop; a
      403 or 404 on one parent's own query is that parent's failure.
    - Any other error escaping export() ends the entity with success=False;
      records already batched are still flushed.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, ClassVar, Optional

from core.errors.classifiers import AUTHENTICATION, ErrorClassification, classify_error
from core.logging.context_managers import LogContext, log_phase
from core.logging.utilities import log_exception, log_with_context
from inventory_export import metrics
from inventory_export.batching.batcher import SizeAwareBatcher
from inventory_export.batching.envelope import Batch, EventEnvelope
from inventory_export.cleaning import clean_record
from inventory_export.config import AppConfig, UnitDescriptor, UnitKind
from inventory_export.correlation import CorrelationContext
from inventory_export.results import (
    EntityExportResult,
    ErrorInfo,
    ParentOutcome,
    SizingWarning,
)
from inventory_export.source.fetcher import PagedFetcher
from inventory_export.telemetry import progress_fields, track_event
from inventory_export.transport.transmitter import BatchSender

logger = logging.getLogger(__name__)


@dataclass
class ExportContext:
    """
    Everything an exporter needs for one unit, passed explicitly.

    collected carries ids produced by one exporter for a later one
    (group ids for memberships, resources for child resources).
    """

    unit: UnitDescriptor
    unit_kind: UnitKind
    config: AppConfig
    correlation: CorrelationContext
    sender: BatchSender
    graph: Optional[PagedFetcher] = None
    arm: Optional[PagedFetcher] = None
    sleep: Callable[[float], None] = time.sleep
    rng: random.Random = field(default_factory=random.Random)
    collected: dict[str, list[Any]] = field(default_factory=dict)
    batcher_factory: Optional[Callable[[str], SizeAwareBatcher]] = None

    @property
    def unit_id(self) -> str:
        return self.unit.id

    def new_batcher(self, entity_type: str) -> SizeAwareBatcher:
        if self.batcher_factory is not None:
            return self.batcher_factory(entity_type)
        return SizeAwareBatcher.from_config(self.config.batching, entity_type=entity_type)


class EntityExporter(ABC):
    """Base class for all exporters. One instance per entity type per unit."""

    entity_type: ClassVar[str] = ""
    odata_context: ClassVar[str] = ""

    def __init__(self, ctx: ExportContext):
        self.ctx = ctx
        self.correlation = ctx.correlation.child(entity_type=self.entity_type)
        self.result = EntityExportResult(entity_type=self.entity_type)
        self.batcher = ctx.new_batcher(self.entity_type)
        self._last_progress = 0
        self._sink_error: Optional[BaseException] = None

    @property
    def metrics(self):
        return self.result.metrics

    @abstractmethod
    def export(self) -> None:
        """Fetch, clean and emit all records of this entity type."""

    def run(self) -> EntityExportResult:
        started = time.perf_counter()
        with LogContext(entity_type=self.entity_type):
            log_with_context(
                logger,
                logging.INFO,
                f"Exporting {self.entity_type}",
                **self.correlation.log_fields(),
            )
            try:
                self.export()
            except Exception as e:
                classification = classify_error(e)
                if classification.is_fatal:
                    if e is not self._sink_error:
                        self._flush_batches()
                    raise
                self.result.success = False
                self.result.error = ErrorInfo.from_exception(
                    e, stage=self.entity_type, classification=classification
                )
                log_exception(
                    logger,
                    e,
                    f"Export of {self.entity_type} stopped early",
                    level=logging.ERROR,
                    include_traceback=False,
                    error_type=classification.error_type,
                )

            self._flush_batches()
            self.result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            self._log_summary()
        return self.result

    # -------------------------------------------------------------------------
    # Record emission
    # -------------------------------------------------------------------------

    def make_envelope(
        self,
        record: dict[str, Any],
        record_type: str,
        parent_id: Optional[str] = None,
        resource_group: Optional[str] = None,
    ) -> EventEnvelope:
        return EventEnvelope(
            odata_context=self.odata_context or self.entity_type,
            resource_type=record_type,
            data=clean_record(record, record_type),
            unit_id=self.ctx.unit_id,
            export_id=self.ctx.correlation.export_id,
            resource_group=resource_group,
            parent_id=parent_id,
        )

    def emit(
        self,
        record: dict[str, Any],
        record_type: Optional[str] = None,
        parent_id: Optional[str] = None,
        resource_group: Optional[str] = None,
        sub_type: Optional[str] = None,
    ) -> None:
        """Clean, envelope and batch one record; send any sealed batches."""
        record_type = record_type or str(record.get("type") or self.entity_type)
        envelope = self.make_envelope(record, record_type, parent_id, resource_group)
        for batch in self.batcher.add(envelope):
            self._send(batch)
        self.metrics.record_count += 1
        key = (sub_type or record_type).lower()
        self.result.sub_type_breakdown[key] = self.result.sub_type_breakdown.get(key, 0) + 1
        metrics.records_exported_counter.labels(entity_type=self.entity_type).inc()

    def emit_all(self, records: Iterable[dict[str, Any]], **kwargs: Any) -> int:
        """Emit records as processed units; returns how many were emitted."""
        count = 0
        for record in records:
            self.emit(record, **kwargs)
            self.metrics.processed += 1
            self.metrics.success += 1
            count += 1
            self.maybe_report_progress(self.metrics.processed)
        return count

    def flush(self) -> None:
        batch = self.batcher.flush()
        if batch is not None:
            self._send(batch)

    def _flush_batches(self) -> None:
        with log_phase(logger, "flush_batches", resource_type=self.entity_type):
            self.flush()

    def halts_unit(self, error: BaseException, classification: ErrorClassification) -> bool:
        """Whether an error stops every remaining record of the unit, not just the current one."""
        if error is self._sink_error:
            return True
        return classification.error_type == AUTHENTICATION

    def _send(self, batch: Batch) -> None:
        if batch.oversized:
            self.metrics.oversized_count += 1
            metrics.oversized_envelopes_counter.labels(entity_type=self.entity_type).inc()
            self.result.warnings.append(
                SizingWarning(
                    kind=SizingWarning.OVERSIZED_ENVELOPE,
                    entity_type=self.entity_type,
                    payload_bytes=batch.size_bytes,
                    record_ids=tuple(batch.record_ids),
                    unit_id=self.ctx.unit_id,
                )
            )

        try:
            outcome = self.ctx.sender.send(batch)
        except Exception as e:
            self._sink_error = e
            raise
        self.metrics.batch_count += 1
        if outcome.success:
            self.metrics.total_payload_bytes += outcome.payload_bytes
            return

        self.metrics.failed_batches += 1
        if outcome.payload_too_large:
            self.result.warnings.append(
                SizingWarning(
                    kind=SizingWarning.PAYLOAD_TOO_LARGE,
                    entity_type=self.entity_type,
                    payload_bytes=outcome.payload_bytes,
                    record_ids=outcome.record_ids,
                    unit_id=self.ctx.unit_id,
                )
            )

    # -------------------------------------------------------------------------
    # Progress / summary
    # -------------------------------------------------------------------------

    def maybe_report_progress(self, done: int, total: Optional[int] = None) -> None:
        interval = self.ctx.config.progress_interval
        if done - self._last_progress < interval and done != total:
            return
        self._last_progress = done
        track_event(
            f"{self.entity_type} export progress",
            **progress_fields(done, total),
            record_count=self.metrics.record_count,
        )

    def _log_summary(self) -> None:
        m = self.metrics
        log_with_context(
            logger,
            logging.INFO if self.result.success else logging.WARNING,
            f"Finished {self.entity_type}: processed={m.processed} "
            f"failed={m.failed} records={m.record_count} batches={m.batch_count}",
            success=self.result.success,
            records_processed=m.processed,
            records_succeeded=m.success,
            records_failed=m.failed,
            record_count=m.record_count,
            batch_count=m.batch_count,
            duration_ms=self.result.duration_ms,
        )


class FanOutExporter(EntityExporter):
    """
    Exporter that issues one query per parent.

    processed/success/failed count parents; record_count counts the child
    records gathered. A failing parent, including a 403 or 404 on its own
    query, is recorded as a ParentOutcome and the loop continues with the
    next one. Only errors for which halts_unit() holds end the loop.
    """

    @abstractmethod
    def parents(self) -> list[Any]:
        """Parents to fan out over, in processing order."""

    @abstractmethod
    def export_parent(self, parent: Any) -> int:
        """Emit all child records of one parent; return how many."""

    def parent_id(self, parent: Any) -> str:
        return str(parent)

    def pause(self) -> None:
        fan_out = self.ctx.config.fan_out
        self.ctx.sleep(self.ctx.rng.uniform(fan_out.min_delay_seconds, fan_out.max_delay_seconds))

    def process_parent(self, parent: Any) -> ParentOutcome:
        parent_id = self.parent_id(parent)
        try:
            count = self.export_parent(parent)
        except Exception as e:
            classification = classify_error(e)
            if self.halts_unit(e, classification):
                raise
            log_with_context(
                logger,
                logging.WARNING,
                f"{self.entity_type}: parent failed, continuing",
                parent_id=parent_id,
                error_type=classification.error_type,
                status_code=classification.http_status_code,
                error_message=str(e)[:200],
            )
            return ParentOutcome(
                parent_id=parent_id,
                success=False,
                error=ErrorInfo.from_exception(e, stage=self.entity_type, classification=classification),
            )
        return ParentOutcome(parent_id=parent_id, success=True, record_count=count)

    def export(self) -> None:
        parents = self.parents()
        total = len(parents)
        for index, parent in enumerate(parents):
            if index > 0:
                self.pause()
            outcome = self.process_parent(parent)
            self.metrics.processed += 1
            if outcome.success:
                self.metrics.success += 1
            else:
                self.metrics.failed += 1
                self.result.failed_parents.append(outcome)
            self.maybe_report_progress(self.metrics.processed, total)


__all__ = ["ExportContext", "EntityExporter", "FanOutExporter"]
