"""
Multi-unit coordination and the run entry point.

MultiUnitCoordinator runs ExportOrchestrator over a priority-ordered list
of units. Each unit is isolated: its failure is recorded in its own
UnitExportResult and the next unit runs regardless. The unit identity is
passed explicitly to every component; the only ambient state touched is
the logging context, which is restored after each unit even when the
unit raises.

run_export() is what both the scheduled and the on-demand triggers call.
"""

import logging
import os
import random
import time
from collections.abc import Callable, Collection, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Optional

import requests

from core.auth.credentials import AzureCredentialProvider
from core.errors.classifiers import classify_error
from core.errors.exceptions import ConfigurationError
from core.logging.context_managers import LogContext
from core.logging.setup import generate_export_id
from core.logging.utilities import log_exception, log_with_context
from core.resilience.retry import RetryExecutor
from core.types import TokenProvider
from inventory_export import metrics
from inventory_export.config import AppConfig, UnitDescriptor, UnitKind
from inventory_export.correlation import CorrelationContext
from inventory_export.orchestrator import ExportOrchestrator
from inventory_export.results import ErrorInfo, ExportResult, UnitExportResult, UnitState
from inventory_export.state import RunStateStore, unit_key
from inventory_export.telemetry import track_event
from inventory_export.transport.transmitter import BatchSender, EventHubTransmitter

logger = logging.getLogger(__name__)

SCOPES = ("tenants", "subscriptions", "all")

Unit = tuple[UnitKind, UnitDescriptor]
OrchestratorFactory = Callable[..., ExportOrchestrator]


@dataclass(frozen=True)
class TriggerContext:
    """
    How the run was started.

    Attributes:
        name: Operation name ("ScheduledExport", "OnDemandExport")
        scope: Which unit kinds to export: tenants, subscriptions or all
        export_id: Run id; generated when not given
    """

    name: str = "ScheduledExport"
    scope: str = "all"
    export_id: Optional[str] = None

    def __post_init__(self):
        if self.scope not in SCOPES:
            raise ConfigurationError(
                f"Invalid scope '{self.scope}', expected one of {', '.join(SCOPES)}",
                context={"field": "scope"},
            )

    @property
    def kinds(self) -> tuple[UnitKind, ...]:
        if self.scope == "tenants":
            return (UnitKind.TENANT,)
        if self.scope == "subscriptions":
            return (UnitKind.SUBSCRIPTION,)
        return (UnitKind.TENANT, UnitKind.SUBSCRIPTION)


def select_units(
    config: AppConfig,
    kinds: Sequence[UnitKind],
    unit_filter: Optional[Collection[str]] = None,
) -> list[Unit]:
    """Enabled units of the given kinds in priority order, optionally filtered by id."""
    wanted = {u.lower() for u in unit_filter} if unit_filter else None
    units: list[Unit] = []
    for kind in kinds:
        for unit in config.active_units(kind):
            if wanted is None or unit.id.lower() in wanted:
                units.append((kind, unit))
    return units


class MultiUnitCoordinator:
    """
    Runs each unit through an ExportOrchestrator and aggregates the results.

    Args:
        config: Validated configuration
        token_provider: Token source shared by all units
        sender: Batch sender shared by all units
        correlation: Run correlation context
        state_store: Optional store for last-successful-export timestamps
        orchestrator_factory: Builds one orchestrator per unit
        session: requests.Session shared by source fetchers
        sleep: Sleep used for backoff and fan-out pacing
        rng: Random source for fan-out jitter
    """

    def __init__(
        self,
        config: AppConfig,
        token_provider: TokenProvider,
        sender: BatchSender,
        correlation: CorrelationContext,
        state_store: Optional[RunStateStore] = None,
        orchestrator_factory: OrchestratorFactory = ExportOrchestrator,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.token_provider = token_provider
        self.sender = sender
        self.correlation = correlation
        self.state_store = state_store
        self.orchestrator_factory = orchestrator_factory
        self.session = session
        self.sleep = sleep
        self.rng = rng or random.Random()

    def run_unit(self, kind: UnitKind, unit: UnitDescriptor) -> UnitExportResult:
        previous = self.state_store.get(unit_key(unit.id)) if self.state_store else None
        try:
            orchestrator = self.orchestrator_factory(
                unit=unit,
                kind=kind,
                config=self.config,
                token_provider=self.token_provider,
                sender=self.sender,
                correlation=self.correlation,
                session=self.session,
                sleep=self.sleep,
                rng=self.rng,
            )
            result = orchestrator.run()
        except Exception as e:
            classification = classify_error(e)
            log_exception(logger, e, f"Unit {unit.display_name} raised unexpectedly")
            result = UnitExportResult(
                unit_id=unit.id,
                unit_kind=kind.value,
                unit_name=unit.display_name,
                state=UnitState.FAILED_FATAL if classification.is_fatal else UnitState.FAILED_TRANSIENT,
                error=ErrorInfo.from_exception(e, stage="orchestrate", classification=classification),
            )

        result.previous_export = previous
        if result.success and self.state_store is not None:
            self.state_store.put(unit_key(unit.id), datetime.now(UTC).isoformat())
        return result

    def run(self, units: Sequence[Unit]) -> ExportResult:
        export_result = ExportResult(export_id=self.correlation.export_id)
        started = time.perf_counter()

        for index, (kind, unit) in enumerate(units, start=1):
            with LogContext(unit_id=unit.id, stage=kind.value):
                track_event(
                    f"Starting unit {index}/{len(units)}: {unit.display_name}",
                    unit_kind=kind.value,
                )
                unit_result = self.run_unit(kind, unit)

            export_result.units.append(unit_result)
            export_result.totals.merge(unit_result.metrics)
            export_result.warnings.extend(w.to_dict() for w in unit_result.warnings)

        export_result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        metrics.last_run_success_gauge.set(1 if export_result.success else 0)
        log_with_context(
            logger,
            logging.INFO if export_result.success else logging.ERROR,
            "Export run finished",
            success=export_result.success,
            units_total=export_result.total_units,
            units_failed=export_result.failed_units,
            record_count=export_result.totals.record_count,
            batch_count=export_result.totals.batch_count,
            duration_ms=export_result.duration_ms,
        )
        if export_result.warnings:
            logger.warning(
                "Batch sizing warnings were raised during the run",
                extra={"record_count": len(export_result.warnings)},
            )
        return export_result


def default_token_provider(config: AppConfig) -> TokenProvider:
    """Managed identity when an identity client id is configured without SPN secrets."""
    has_spn = os.getenv("AZURE_CLIENT_SECRET") or os.getenv("AZURE_CERTIFICATE_PATH")
    if config.identity_client_id and not has_spn:
        return AzureCredentialProvider(managed_identity_client_id=config.identity_client_id)
    return AzureCredentialProvider()


def build_sender(
    config: AppConfig,
    token_provider: TokenProvider,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchSender:
    if not config.sink.is_configured:
        raise ConfigurationError(
            "Event hub sink is not configured (set sink.namespace and sink.hub_name, "
            "or EVENTHUB_NAMESPACE and EVENTHUB_NAME)",
            context={"field": "sink"},
        )
    transmitter = EventHubTransmitter.from_config(config.sink, token_provider, session=session)
    retry = RetryExecutor(
        config=config.retry.to_retry_config(),
        sleep=sleep,
        on_attempt=metrics.record_retry_attempt,
    )
    return BatchSender(transmitter, retry, max_attempts=config.retry.max_attempts)


def run_export(
    trigger_context: TriggerContext,
    config: AppConfig,
    unit_filter: Optional[Collection[str]] = None,
    token_provider: Optional[TokenProvider] = None,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
    state_store: Optional[RunStateStore] = None,
    orchestrator_factory: OrchestratorFactory = ExportOrchestrator,
) -> ExportResult:
    """
    Export every selected unit and return the aggregated result.

    Args:
        trigger_context: Trigger name, scope and optional export id
        config: Validated configuration
        unit_filter: Unit ids to restrict the run to (None = all enabled units)
        token_provider: Token source (default: from config and environment)
        session: requests.Session shared by all HTTP calls
        sleep: Sleep function (injected in tests)
        state_store: Run-state store (default: config.state_file when set)
        orchestrator_factory: Builds the per-unit orchestrator

    Returns:
        ExportResult with per-unit breakdown and totals

    Raises:
        ConfigurationError: No sink configured, or no unit matches the selection
    """
    export_id = trigger_context.export_id or generate_export_id()
    correlation = CorrelationContext.new(trigger_context.name, operation_id=export_id)
    units = select_units(config, trigger_context.kinds, unit_filter)
    if not units:
        raise ConfigurationError(
            f"No enabled units selected for scope '{trigger_context.scope}'",
            context={"field": "units"},
        )

    session = session or requests.Session()
    token_provider = token_provider or default_token_provider(config)
    sender = build_sender(config, token_provider, session=session, sleep=sleep)
    if state_store is None and config.state_file is not None:
        state_store = RunStateStore(config.state_file)

    with LogContext(export_id=export_id, operation_id=export_id, operation_name=trigger_context.name):
        track_event(
            "Export run starting",
            units_total=len(units),
            unit_kind=trigger_context.scope,
        )
        coordinator = MultiUnitCoordinator(
            config=config,
            token_provider=token_provider,
            sender=sender,
            correlation=correlation,
            state_store=state_store,
            orchestrator_factory=orchestrator_factory,
            session=session,
            sleep=sleep,
        )
        return coordinator.run(units)


__all__ = [
    "SCOPES",
    "TriggerContext",
    "MultiUnitCoordinator",
    "select_units",
    "default_token_provider",
    "build_sender",
    "run_export",
]
