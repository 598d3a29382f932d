"""
Tests for MultiUnitCoordinator and run_export.

Test Coverage:
    - Unit isolation: one unit failing never prevents the next
    - Log context restored after each unit, including when a unit raises
    - Totals, warnings and last-successful-export state
    - Trigger scope and unit selection
"""

from unittest.mock import Mock

import pytest

from core.errors.exceptions import ConfigurationError, PermissionDeniedError
from core.logging.context import get_log_context
from helpers import OTHER_SUBSCRIPTION_ID, SUBSCRIPTION_ID, TENANT_ID, FakeSender, FakeTokenProvider
from inventory_export.config import AppConfig, UnitKind
from inventory_export.coordinator import (
    MultiUnitCoordinator,
    TriggerContext,
    run_export,
    select_units,
)
from inventory_export.correlation import CorrelationContext
from inventory_export.results import (
    EntityExportResult,
    ErrorInfo,
    SizingWarning,
    UnitExportResult,
    UnitState,
)
from inventory_export.state import RunStateStore, unit_key


def make_config(**kwargs):
    data = {
        "tenants": [{"id": TENANT_ID, "priority": 5}],
        "subscriptions": [
            {"id": SUBSCRIPTION_ID, "priority": 2},
            {"id": OTHER_SUBSCRIPTION_ID, "priority": 1},
        ],
        "sink": {"namespace": "ns", "hub_name": "inventory"},
    }
    data.update(kwargs)
    return AppConfig.model_validate(data)


class ScriptedOrchestrators:
    """orchestrator_factory stand-in: outcome per unit id, and a record of context seen."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.seen = []

    def __call__(self, unit, kind, **kwargs):
        factory = self

        class _Orchestrator:
            def run(self):
                factory.seen.append((unit.id, kind, dict(get_log_context())))
                outcome = factory.outcomes.get(unit.id, UnitState.COMPLETED)
                if isinstance(outcome, Exception):
                    raise outcome
                result = UnitExportResult(unit_id=unit.id, unit_kind=kind.value, state=outcome)
                result.metrics.record_count = 10
                result.metrics.batch_count = 1
                if outcome != UnitState.COMPLETED:
                    result.error = ErrorInfo.from_exception(PermissionDeniedError("HTTP 403", status_code=403))
                return result

        return _Orchestrator()


def make_coordinator(factory, state_store=None, config=None):
    return MultiUnitCoordinator(
        config=config or make_config(),
        token_provider=FakeTokenProvider(),
        sender=FakeSender(),
        correlation=CorrelationContext.new("TestExport", operation_id="x-test"),
        state_store=state_store,
        orchestrator_factory=factory,
        session=Mock(),
        sleep=lambda s: None,
    )


class TestSelectUnits:
    def test_priority_order_within_kind(self):
        units = select_units(make_config(), (UnitKind.TENANT, UnitKind.SUBSCRIPTION))
        assert [(k, u.id) for k, u in units] == [
            (UnitKind.TENANT, TENANT_ID),
            (UnitKind.SUBSCRIPTION, OTHER_SUBSCRIPTION_ID),
            (UnitKind.SUBSCRIPTION, SUBSCRIPTION_ID),
        ]

    def test_filter_is_case_insensitive(self):
        units = select_units(make_config(), (UnitKind.SUBSCRIPTION,), [SUBSCRIPTION_ID.upper()])
        assert [u.id for _, u in units] == [SUBSCRIPTION_ID]

    def test_disabled_units_skipped(self):
        config = make_config(subscriptions=[{"id": SUBSCRIPTION_ID, "enabled": False}])
        assert select_units(config, (UnitKind.SUBSCRIPTION,)) == []


class TestTriggerContext:
    def test_scope_kinds(self):
        assert TriggerContext(scope="tenants").kinds == (UnitKind.TENANT,)
        assert TriggerContext(scope="subscriptions").kinds == (UnitKind.SUBSCRIPTION,)
        assert TriggerContext().kinds == (UnitKind.TENANT, UnitKind.SUBSCRIPTION)

    def test_invalid_scope(self):
        with pytest.raises(ConfigurationError):
            TriggerContext(scope="everything")


class TestCoordinatorIsolation:
    def test_failed_unit_does_not_stop_next(self):
        factory = ScriptedOrchestrators({OTHER_SUBSCRIPTION_ID: UnitState.FAILED_FATAL})
        units = select_units(make_config(), (UnitKind.SUBSCRIPTION,))

        result = make_coordinator(factory).run(units)

        assert [u.unit_id for u in result.units] == [OTHER_SUBSCRIPTION_ID, SUBSCRIPTION_ID]
        assert result.units[0].state == UnitState.FAILED_FATAL
        assert result.units[1].state == UnitState.COMPLETED
        assert result.failed_units == 1
        assert not result.success
        assert result.http_status == 500
        assert result.to_dict()["error"]["status_code"] == 403

    def test_raising_orchestrator_becomes_failed_result(self):
        factory = ScriptedOrchestrators({OTHER_SUBSCRIPTION_ID: RuntimeError("orchestrator bug")})
        units = select_units(make_config(), (UnitKind.SUBSCRIPTION,))

        result = make_coordinator(factory).run(units)

        assert result.units[0].state == UnitState.FAILED_TRANSIENT
        assert result.units[0].error.stage == "orchestrate"
        assert result.units[1].success

    def test_log_context_scoped_per_unit(self):
        factory = ScriptedOrchestrators({OTHER_SUBSCRIPTION_ID: RuntimeError("boom")})
        units = select_units(make_config(), (UnitKind.TENANT, UnitKind.SUBSCRIPTION))

        make_coordinator(factory).run(units)

        assert [(uid, ctx["unit_id"], ctx["stage"]) for uid, _, ctx in factory.seen] == [
            (TENANT_ID, TENANT_ID, "tenant"),
            (OTHER_SUBSCRIPTION_ID, OTHER_SUBSCRIPTION_ID, "subscription"),
            (SUBSCRIPTION_ID, SUBSCRIPTION_ID, "subscription"),
        ]
        assert get_log_context()["unit_id"] == ""
        assert get_log_context()["stage"] == ""

    def test_totals_and_warnings_aggregated(self):
        class WarningOrchestrators(ScriptedOrchestrators):
            def __call__(self, unit, kind, **kwargs):
                inner = super().__call__(unit, kind, **kwargs)

                class _Wrapped:
                    def run(self):
                        result = inner.run()
                        entity = EntityExportResult(entity_type="Resources")
                        entity.warnings.append(
                            SizingWarning(kind=SizingWarning.OVERSIZED_ENVELOPE, entity_type="Resources", payload_bytes=300_000)
                        )
                        result.entities.append(entity)
                        return result

                return _Wrapped()

        units = select_units(make_config(), (UnitKind.SUBSCRIPTION,))
        result = make_coordinator(WarningOrchestrators()).run(units)

        assert result.success
        assert result.totals.record_count == 20
        assert result.totals.batch_count == 2
        assert len(result.warnings) == 2
        assert result.warnings[0]["kind"] == "oversized_envelope"


class TestRunState:
    def test_success_recorded_and_reported_next_run(self, tmp_path):
        store = RunStateStore(tmp_path / "state.json")
        factory = ScriptedOrchestrators({OTHER_SUBSCRIPTION_ID: UnitState.FAILED_TRANSIENT})
        units = select_units(make_config(), (UnitKind.SUBSCRIPTION,))

        first = make_coordinator(factory, state_store=store).run(units)
        assert all(u.previous_export is None for u in first.units)
        assert store.get(unit_key(SUBSCRIPTION_ID)) is not None
        assert store.get(unit_key(OTHER_SUBSCRIPTION_ID)) is None

        second = make_coordinator(factory, state_store=RunStateStore(tmp_path / "state.json")).run(units)
        assert second.units[0].previous_export is None
        assert second.units[1].previous_export == store.get(unit_key(SUBSCRIPTION_ID))


class TestRunExport:
    def test_runs_selected_scope(self, token_provider):
        factory = ScriptedOrchestrators()
        result = run_export(
            TriggerContext(name="OnDemandExport", scope="tenants", export_id="x-fixed"),
            make_config(),
            token_provider=token_provider,
            session=Mock(),
            orchestrator_factory=factory,
        )
        assert result.export_id == "x-fixed"
        assert [u.unit_id for u in result.units] == [TENANT_ID]
        assert factory.seen[0][2]["export_id"] == "x-fixed"
        assert factory.seen[0][2]["operation_name"] == "OnDemandExport"
        assert get_log_context()["export_id"] == ""

    def test_no_units_selected(self, token_provider):
        with pytest.raises(ConfigurationError):
            run_export(
                TriggerContext(),
                make_config(),
                unit_filter=["44444444-4444-4444-4444-444444444444"],
                token_provider=token_provider,
                orchestrator_factory=ScriptedOrchestrators(),
            )

    def test_missing_sink(self, token_provider):
        with pytest.raises(ConfigurationError):
            run_export(
                TriggerContext(),
                make_config(sink={}),
                token_provider=token_provider,
                orchestrator_factory=ScriptedOrchestrators(),
            )

    def test_generates_export_id(self, token_provider):
        result = run_export(
            TriggerContext(scope="subscriptions"),
            make_config(),
            token_provider=token_provider,
            session=Mock(),
            orchestrator_factory=ScriptedOrchestrators(),
        )
        assert result.export_id.startswith("x-")
        assert len(result.units) == 2
