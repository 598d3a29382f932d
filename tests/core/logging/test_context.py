"""Tests for core.logging.context module."""

from core.logging.context import (
    CONTEXT_FIELDS,
    clear_log_context,
    get_log_context,
    set_log_context,
)


class TestLogContext:
    def test_defaults_are_empty(self):
        ctx = get_log_context()
        assert set(ctx) == set(CONTEXT_FIELDS)
        assert all(value == "" for value in ctx.values())

    def test_set_all_fields(self):
        set_log_context(
            export_id="x-1",
            operation_id="op-1",
            operation_name="ScheduledExport",
            unit_id="sub-1",
            stage="subscription",
            entity_type="Resources",
        )
        assert get_log_context() == {
            "export_id": "x-1",
            "operation_id": "op-1",
            "operation_name": "ScheduledExport",
            "unit_id": "sub-1",
            "stage": "subscription",
            "entity_type": "Resources",
        }

    def test_none_leaves_field_unchanged(self):
        set_log_context(unit_id="sub-1")
        set_log_context(stage="tenant")
        ctx = get_log_context()
        assert ctx["unit_id"] == "sub-1"
        assert ctx["stage"] == "tenant"

    def test_empty_string_clears_field(self):
        set_log_context(unit_id="sub-1")
        set_log_context(unit_id="")
        assert get_log_context()["unit_id"] == ""

    def test_clear(self):
        set_log_context(export_id="x-1", unit_id="sub-1")
        clear_log_context()
        assert get_log_context()["export_id"] == ""
        assert get_log_context()["unit_id"] == ""
