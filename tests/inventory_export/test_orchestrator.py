"""
Tests for ExportOrchestrator.

Test Coverage:
    - Happy path state sequence and metric aggregation
    - Fatal auth failure: FAILED_FATAL before any exporter runs
    - Exporter raising: unit fails with the error's classification, partial stats kept
    - Token audience and tenant per unit kind
"""

import random
from unittest.mock import Mock

from core.auth.credentials import GRAPH_RESOURCE, MANAGEMENT_RESOURCE
from core.errors.exceptions import AuthError, PermissionDeniedError, ServerError
from helpers import SUBSCRIPTION_ID, TENANT_ID, FakeSender, FakeTokenProvider
from inventory_export.config import AppConfig, UnitDescriptor, UnitKind
from inventory_export.correlation import CorrelationContext
from inventory_export.exporters.base import EntityExporter
from inventory_export.orchestrator import ExportOrchestrator
from inventory_export.results import UnitState


class CountingExporter(EntityExporter):
    """Emits two records and remembers every context it was built with."""

    entity_type = "Counting"
    contexts: list = []

    def __init__(self, ctx):
        super().__init__(ctx)
        type(self).contexts.append(ctx)

    def export(self):
        self.emit_all([{"id": "a"}, {"id": "b"}], record_type="widget")


class SecondExporter(CountingExporter):
    entity_type = "Second"
    contexts: list = []


class ExplodingExporter(EntityExporter):
    """Records partial progress, then raises from run() itself."""

    entity_type = "Exploding"
    error: Exception = ServerError("HTTP 503 from ARM")

    def export(self):
        pass

    def run(self):
        self.metrics.processed = 5
        self.metrics.record_count = 5
        raise self.error


class FatalExporter(EntityExporter):
    entity_type = "Fatal"

    def export(self):
        raise PermissionDeniedError("HTTP 403 from ARM", status_code=403)


def make_orchestrator(kind=UnitKind.SUBSCRIPTION, token_provider=None, exporters=(), sender=None, sleeps=None):
    unit_id = TENANT_ID if kind == UnitKind.TENANT else SUBSCRIPTION_ID
    return ExportOrchestrator(
        unit=UnitDescriptor(id=unit_id, name="Unit Under Test"),
        kind=kind,
        config=AppConfig(retry={"auth_max_attempts": 2, "initial_delay_seconds": 0}),
        token_provider=token_provider or FakeTokenProvider(),
        sender=sender or FakeSender(),
        correlation=CorrelationContext.new("TestExport", operation_id="x-test"),
        exporters=list(exporters),
        session=Mock(),
        sleep=(sleeps.append if sleeps is not None else (lambda s: None)),
        rng=random.Random(1),
    )


class TestHappyPath:
    def setup_method(self):
        CountingExporter.contexts = []
        SecondExporter.contexts = []

    def test_completed_with_all_entities(self):
        sender = FakeSender()
        result = make_orchestrator(exporters=[CountingExporter, SecondExporter], sender=sender).run()

        assert result.state == UnitState.COMPLETED
        assert result.success
        assert [e.entity_type for e in result.entities] == ["Counting", "Second"]
        assert result.metrics.processed == 4
        assert result.metrics.record_count == 4
        assert result.metrics.batch_count == 2
        assert result.unit_name == "Unit Under Test"
        assert result.duration_ms >= 0
        assert len(sender.envelopes) == 4

    def test_exporters_share_one_context(self):
        make_orchestrator(exporters=[CountingExporter, SecondExporter]).run()
        assert CountingExporter.contexts[0] is SecondExporter.contexts[0]

    def test_subscription_uses_management_audience(self):
        provider = FakeTokenProvider()
        orchestrator = make_orchestrator(token_provider=provider, exporters=[CountingExporter])
        orchestrator.run()
        assert provider.calls == [(MANAGEMENT_RESOURCE, None)]
        ctx = CountingExporter.contexts[0]
        assert ctx.arm is not None and ctx.graph is None
        assert ctx.arm.dependency_name == "ARM"

    def test_tenant_uses_graph_audience_in_own_tenant(self):
        provider = FakeTokenProvider()
        make_orchestrator(UnitKind.TENANT, token_provider=provider, exporters=[CountingExporter]).run()
        assert provider.calls == [(GRAPH_RESOURCE, TENANT_ID)]
        ctx = CountingExporter.contexts[0]
        assert ctx.graph is not None and ctx.arm is None
        assert ctx.graph.tenant_id == TENANT_ID

    def test_default_plan_from_config(self):
        orchestrator = ExportOrchestrator(
            unit=UnitDescriptor(id=TENANT_ID),
            kind=UnitKind.TENANT,
            config=AppConfig(),
            token_provider=FakeTokenProvider(),
            sender=FakeSender(),
            correlation=CorrelationContext.new("TestExport"),
        )
        assert [e.entity_type for e in orchestrator.exporters] == ["Users", "Groups", "Memberships"]


class TestAuthFailure:
    def setup_method(self):
        CountingExporter.contexts = []

    def test_forbidden_is_fatal_and_no_exporter_runs(self, sleeps):
        provider = FakeTokenProvider(error=PermissionDeniedError("HTTP 403 Forbidden", status_code=403))
        sender = FakeSender()
        result = make_orchestrator(token_provider=provider, exporters=[CountingExporter], sender=sender, sleeps=sleeps).run()

        assert result.state == UnitState.FAILED_FATAL
        assert result.error.is_fatal
        assert result.error.stage == "authenticate"
        assert result.error.remediation
        assert result.entities == []
        assert CountingExporter.contexts == []
        assert sender.batches == []
        assert len(provider.calls) == 1
        assert sleeps == []

    def test_bad_credentials_fatal(self):
        provider = FakeTokenProvider(error=AuthError("AADSTS7000215: Invalid client secret"))
        result = make_orchestrator(token_provider=provider, exporters=[CountingExporter]).run()
        assert result.state == UnitState.FAILED_FATAL

    def test_transient_auth_failure_retried_then_transient(self, sleeps):
        provider = FakeTokenProvider(error=ConnectionError("Connection reset by peer"))
        result = make_orchestrator(token_provider=provider, exporters=[CountingExporter], sleeps=sleeps).run()

        assert result.state == UnitState.FAILED_TRANSIENT
        assert not result.error.is_fatal
        assert len(provider.calls) == 2
        assert len(sleeps) == 1


class TestExporterFailure:
    def setup_method(self):
        CountingExporter.contexts = []
        SecondExporter.contexts = []

    def test_raising_exporter_fails_unit_with_partial_stats(self):
        result = make_orchestrator(exporters=[CountingExporter, ExplodingExporter, SecondExporter]).run()

        assert result.state == UnitState.FAILED_TRANSIENT
        assert not result.error.is_fatal
        assert result.error.stage == "Exploding"
        assert [e.entity_type for e in result.entities] == ["Counting", "Exploding"]
        assert result.entities[-1].success is False
        assert result.metrics.processed == 2 + 5
        assert result.metrics.record_count == 2 + 5
        assert SecondExporter.contexts == []

    def test_fatal_exporter_error_fails_unit_fatally(self):
        result = make_orchestrator(exporters=[FatalExporter, CountingExporter]).run()

        assert result.state == UnitState.FAILED_FATAL
        assert result.error.status_code == 403
        assert result.error.stage == "Fatal"
        assert CountingExporter.contexts == []

    def test_entity_failure_value_still_completes_unit(self):
        class FailingValueExporter(EntityExporter):
            entity_type = "FailingValue"

            def export(self):
                raise ServerError("HTTP 500")

        result = make_orchestrator(exporters=[FailingValueExporter, CountingExporter]).run()

        assert result.state == UnitState.COMPLETED
        assert result.entities[0].success is False
        assert result.entities[1].success is True
