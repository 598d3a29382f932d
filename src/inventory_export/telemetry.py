"""
Structured telemetry events.

Every outbound call (token acquisition, page fetch, batch send) reports a
dependency event with its name, target, duration and success, whatever
the outcome. Progress and lifecycle milestones are reported as named
events. Both go to the structured log; dependency calls also feed the
prometheus collectors in inventory_export.metrics.
"""

import logging
from typing import Any

from core.logging.utilities import log_with_context
from inventory_export import metrics

logger = logging.getLogger(__name__)


def track_dependency(
    name: str,
    target: str,
    duration_ms: float,
    success: bool,
    **fields: Any,
) -> None:
    """
    Report one dependency call.

    Args:
        name: Dependency name ("EventHub", "ARM", "Graph", "AAD")
        target: Endpoint or resource that was called
        duration_ms: Wall time of the call
        success: Whether the call succeeded
        **fields: Extra structured fields (http_status, batch_bytes, ...)
    """
    metrics.record_dependency(name, duration_ms, success)
    log_with_context(
        logger,
        logging.DEBUG if success else logging.WARNING,
        f"Dependency {name} {'succeeded' if success else 'failed'}",
        dependency_type=name,
        target=target,
        duration_ms=round(duration_ms, 2),
        success=success,
        **fields,
    )


def track_event(name: str, level: int = logging.INFO, **fields: Any) -> None:
    """Report a named lifecycle or progress event."""
    log_with_context(logger, level, name, event_name=name, **fields)


def progress_fields(done: int, total: int | None) -> dict[str, Any]:
    """Progress counters, with percent complete when the total is known."""
    data: dict[str, Any] = {"parents_processed": done}
    if total:
        data["parents_total"] = total
        data["percent_complete"] = round(100.0 * done / total, 1)
    return data


__all__ = ["track_dependency", "track_event", "progress_fields"]
