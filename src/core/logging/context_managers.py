"""Context managers for structured logging."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_exception, log_with_context

logger = logging.getLogger(__name__)


class LogContext:
    """
    Swap the ambient log context for the duration of a block.

    The previous context is restored on exit, including when the block
    raises, so a failing unit never leaks its identity into the logs of
    the next one. Fields left as None keep their current value.

    Usage:
        with LogContext(unit_id=tenant_id, stage="Users"):
            exporter.run()
    """

    def __init__(
        self,
        export_id: Optional[str] = None,
        operation_id: Optional[str] = None,
        operation_name: Optional[str] = None,
        unit_id: Optional[str] = None,
        stage: Optional[str] = None,
        entity_type: Optional[str] = None,
    ):
        self.new_context = {
            "export_id": export_id,
            "operation_id": operation_id,
            "operation_name": operation_name,
            "unit_id": unit_id,
            "stage": stage,
            "entity_type": entity_type,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**self.new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self.old_context)
        return False


class StageLogContext(LogContext):
    """LogContext for one orchestrator stage; logs its duration and outcome on exit."""

    def __init__(self, stage: str, unit_id: Optional[str] = None):
        super().__init__(stage=stage, unit_id=unit_id)
        self.stage = stage
        self.duration_ms: Optional[float] = None
        self._start: float = 0.0

    def __enter__(self) -> "StageLogContext":
        super().__enter__()
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = round((time.perf_counter() - self._start) * 1000, 2)
        # Logged before restore so the record still carries this stage.
        log_with_context(
            logger,
            logging.DEBUG,
            f"Stage {self.stage} {'failed' if exc_val is not None else 'finished'}",
            duration_ms=self.duration_ms,
            outcome="failed" if exc_val is not None else "success",
        )
        return super().__exit__(exc_type, exc_val, exc_tb)


@contextmanager
def log_phase(log: logging.Logger, phase: str, level: int = logging.DEBUG, **context: Any):
    """
    Time a phase within a stage and log when it ends, raised or not.

    Example:
        with log_phase(logger, "flush_batches", resource_type="Users"):
            exporter.flush()
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        log_with_context(
            log,
            level,
            f"Phase complete: {phase}",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **context,
        )


@contextmanager
def log_operation(
    log: logging.Logger,
    operation: str,
    level: int = logging.INFO,
    **context: Any,
):
    """Log completion of a one-off operation, or its failure before re-raising."""
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        log_exception(
            log,
            e,
            f"Failed: {operation}",
            include_traceback=False,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            operation=operation,
            **context,
        )
        raise
    log_with_context(
        log,
        level,
        f"Completed: {operation}",
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
        operation=operation,
        **context,
    )
