"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_export_id: ContextVar[str] = ContextVar("export_id", default="")
_operation_id: ContextVar[str] = ContextVar("operation_id", default="")
_operation_name: ContextVar[str] = ContextVar("operation_name", default="")
_unit_id: ContextVar[str] = ContextVar("unit_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")
_entity_type: ContextVar[str] = ContextVar("entity_type", default="")

_VARS: Dict[str, ContextVar[str]] = {
    "export_id": _export_id,
    "operation_id": _operation_id,
    "operation_name": _operation_name,
    "unit_id": _unit_id,
    "stage": _stage_name,
    "entity_type": _entity_type,
}

CONTEXT_FIELDS = tuple(_VARS)


def set_log_context(
    export_id: Optional[str] = None,
    operation_id: Optional[str] = None,
    operation_name: Optional[str] = None,
    unit_id: Optional[str] = None,
    stage: Optional[str] = None,
    entity_type: Optional[str] = None,
) -> None:
    values = {
        "export_id": export_id,
        "operation_id": operation_id,
        "operation_name": operation_name,
        "unit_id": unit_id,
        "stage": stage,
        "entity_type": entity_type,
    }
    for key, value in values.items():
        if value is not None:
            _VARS[key].set(value)


def get_log_context() -> Dict[str, str]:
    return {key: var.get() for key, var in _VARS.items()}


def clear_log_context() -> None:
    for var in _VARS.values():
        var.set("")
