"""
Per-unit export orchestration.

ExportOrchestrator runs one unit (a tenant or a subscription):

    AUTHENTICATING -> EXPORTING (entity 1..n) -> COMPLETED
          |                  |
          v                  v
     FAILED_FATAL      FAILED_FATAL / FAILED_TRANSIENT

Authentication is attempted once per unit with a short retry budget. A
fatal auth failure stops the unit before any exporter runs. An exporter
that raises (instead of returning a failed result) ends the unit; the
error keeps its original classification and the statistics collected so
far are kept in the result.
"""

import logging
import random
import time
from collections.abc import Callable, Sequence
from typing import Optional

import requests

from core.auth.credentials import GRAPH_RESOURCE, MANAGEMENT_RESOURCE
from core.errors.classifiers import classify_error
from core.logging.context_managers import StageLogContext
from core.logging.utilities import log_exception, log_with_context
from core.resilience.retry import RetryExecutor
from core.types import TokenProvider
from inventory_export import metrics
from inventory_export.config import AppConfig, UnitDescriptor, UnitKind
from inventory_export.correlation import CorrelationContext
from inventory_export.exporters.base import ExportContext
from inventory_export.exporters.plan import ExporterClass, plan_for
from inventory_export.results import ErrorInfo, UnitExportResult, UnitState
from inventory_export.source.fetcher import PagedFetcher
from inventory_export.telemetry import track_dependency
from inventory_export.transport.transmitter import BatchSender

logger = logging.getLogger(__name__)


class ExportOrchestrator:
    """
    Runs every exporter of one unit in dependency order.

    Args:
        unit: Tenant or subscription to export
        kind: Unit kind; selects the source audience and the exporter plan
        config: Validated application configuration
        token_provider: Source of bearer tokens
        sender: Retrying batch sender shared by the unit's exporters
        correlation: Run correlation context
        exporters: Exporter classes to run (default: plan_for(kind, config.export))
        session: requests.Session for source calls
        sleep: Sleep function for retry backoff and fan-out pacing
        rng: Random source for fan-out jitter
    """

    def __init__(
        self,
        unit: UnitDescriptor,
        kind: UnitKind,
        config: AppConfig,
        token_provider: TokenProvider,
        sender: BatchSender,
        correlation: CorrelationContext,
        exporters: Optional[Sequence[ExporterClass]] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.unit = unit
        self.kind = kind
        self.config = config
        self.token_provider = token_provider
        self.sender = sender
        self.correlation = correlation.child(unit_id=unit.id, unit_kind=kind.value)
        self.exporters = list(exporters) if exporters is not None else plan_for(kind, config.export)
        self.session = session or requests.Session()
        self.sleep = sleep
        self.rng = rng or random.Random()

    @property
    def audience(self) -> str:
        return GRAPH_RESOURCE if self.kind == UnitKind.TENANT else MANAGEMENT_RESOURCE

    @property
    def token_tenant(self) -> Optional[str]:
        """Tenant units request tokens from their own tenant; subscriptions from the home tenant."""
        return self.unit.id if self.kind == UnitKind.TENANT else None

    def _executor(self, max_attempts: Optional[int] = None) -> RetryExecutor:
        return RetryExecutor(
            config=self.config.retry.to_retry_config(max_attempts),
            sleep=self.sleep,
            on_attempt=metrics.record_retry_attempt,
        )

    def authenticate(self) -> None:
        """Acquire the unit's source token; raises on failure after retries."""
        started = time.perf_counter()
        try:
            self._executor(self.config.retry.auth_max_attempts).execute(
                lambda: self.token_provider.get_token(self.audience, tenant_id=self.token_tenant),
                operation_name=f"authenticate:{self.kind.value}",
            )
        except Exception:
            track_dependency("AAD", self.audience, (time.perf_counter() - started) * 1000, False)
            raise
        track_dependency("AAD", self.audience, (time.perf_counter() - started) * 1000, True)

    def build_context(self) -> ExportContext:
        fetcher = PagedFetcher(
            token_provider=self.token_provider,
            audience=self.audience,
            retry=self._executor(),
            tenant_id=self.token_tenant,
            session=self.session,
            timeout=self.config.source.timeout_seconds,
            dependency_name="Graph" if self.kind == UnitKind.TENANT else "ARM",
        )
        return ExportContext(
            unit=self.unit,
            unit_kind=self.kind,
            config=self.config,
            correlation=self.correlation,
            sender=self.sender,
            graph=fetcher if self.kind == UnitKind.TENANT else None,
            arm=fetcher if self.kind == UnitKind.SUBSCRIPTION else None,
            sleep=self.sleep,
            rng=self.rng,
        )

    def _transition(self, result: UnitExportResult, state: UnitState) -> None:
        result.state = state
        log_with_context(
            logger,
            logging.DEBUG,
            f"Unit state -> {state.value}",
            state=state.value,
            unit_kind=self.kind.value,
        )

    def _fail(self, result: UnitExportResult, error: Exception, stage: str) -> UnitExportResult:
        classification = classify_error(error)
        state = UnitState.FAILED_FATAL if classification.is_fatal else UnitState.FAILED_TRANSIENT
        self._transition(result, state)
        result.error = ErrorInfo.from_exception(error, stage=stage, classification=classification)
        log_exception(
            logger,
            error,
            f"Unit {self.unit.display_name} failed at {stage}",
            level=logging.ERROR,
            include_traceback=not classification.is_fatal,
            stage=stage,
            state=state.value,
            is_fatal=classification.is_fatal,
            remediation=result.error.remediation,
        )
        return result

    def run(self) -> UnitExportResult:
        result = UnitExportResult(
            unit_id=self.unit.id,
            unit_kind=self.kind.value,
            unit_name=self.unit.display_name,
        )
        started = time.perf_counter()
        try:
            return self._run(result)
        finally:
            result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            metrics.record_unit_outcome(self.kind.value, result.state.value)

    def _run(self, result: UnitExportResult) -> UnitExportResult:
        self._transition(result, UnitState.AUTHENTICATING)
        with StageLogContext("authenticate", unit_id=self.unit.id):
            try:
                self.authenticate()
            except Exception as e:
                return self._fail(result, e, stage="authenticate")

        self._transition(result, UnitState.EXPORTING)
        ctx = self.build_context()
        for exporter_cls in self.exporters:
            stage = exporter_cls.entity_type
            with StageLogContext(stage, unit_id=self.unit.id):
                exporter = exporter_cls(ctx)
                try:
                    entity = exporter.run()
                except Exception as e:
                    partial = exporter.result
                    partial.success = False
                    result.entities.append(partial)
                    result.metrics.merge(partial.metrics)
                    return self._fail(result, e, stage=stage)
            result.entities.append(entity)
            result.metrics.merge(entity.metrics)

        self._transition(result, UnitState.COMPLETED)
        log_with_context(
            logger,
            logging.INFO,
            f"Unit {self.unit.display_name} completed",
            unit_kind=self.kind.value,
            record_count=result.metrics.record_count,
            batch_count=result.metrics.batch_count,
            records_failed=result.metrics.failed,
        )
        return result


__all__ = ["ExportOrchestrator"]
