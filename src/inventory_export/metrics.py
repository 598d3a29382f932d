"""
Prometheus metrics for export monitoring.

Focused on essential metrics:
- Records and batches exported per entity type
- Payload bytes sent to the event hub
- Retry attempts by operation and outcome
- Dependency call latency (token, fetch, send)
- Unit outcomes

All collectors live on a module registry so tests and repeated imports do
not collide with the process-wide default registry.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry(auto_describe=True)

# Batch sizes cluster under the 256 KB event hub limit
BATCH_BYTES_BUCKETS = (
    1024,
    8 * 1024,
    32 * 1024,
    64 * 1024,
    128 * 1024,
    192 * 1024,
    220 * 1024,
    230 * 1024,
    256 * 1024,
    1024 * 1024,
)


def _create_counter(name: str, description: str, labelnames=None) -> Counter:
    return Counter(name, description, labelnames=labelnames or [], registry=REGISTRY)


def _create_gauge(name: str, description: str, labelnames=None) -> Gauge:
    return Gauge(name, description, labelnames=labelnames or [], registry=REGISTRY)


def _create_histogram(name: str, description: str, labelnames=None, buckets=None) -> Histogram:
    kwargs = {
        "name": name,
        "documentation": description,
        "labelnames": labelnames or [],
        "registry": REGISTRY,
    }
    if buckets:
        kwargs["buckets"] = buckets
    return Histogram(**kwargs)


# =============================================================================
# Export Metrics
# =============================================================================

records_exported_counter = _create_counter(
    "inventory_records_exported_total",
    "Records placed into batches, by entity type",
    labelnames=["entity_type"],
)

batches_sent_counter = _create_counter(
    "inventory_batches_total",
    "Batches transmitted to the event hub, by entity type and outcome",
    labelnames=["entity_type", "outcome"],
)

payload_bytes_counter = _create_counter(
    "inventory_payload_bytes_total",
    "Bytes successfully sent to the event hub, by entity type",
    labelnames=["entity_type"],
)

batch_size_histogram = _create_histogram(
    "inventory_batch_size_bytes",
    "Serialized batch size in bytes",
    buckets=BATCH_BYTES_BUCKETS,
)

oversized_envelopes_counter = _create_counter(
    "inventory_oversized_envelopes_total",
    "Envelopes larger than the hard cap, sent as single-item batches",
    labelnames=["entity_type"],
)

# =============================================================================
# Resilience / Dependency Metrics
# =============================================================================

retry_attempts_counter = _create_counter(
    "inventory_retry_attempts_total",
    "Attempts made through the retry executor, by operation and outcome",
    labelnames=["operation", "outcome"],
)

dependency_calls_counter = _create_counter(
    "inventory_dependency_calls_total",
    "Outbound dependency calls, by dependency and success",
    labelnames=["dependency", "success"],
)

dependency_duration_histogram = _create_histogram(
    "inventory_dependency_duration_seconds",
    "Outbound dependency call latency",
    labelnames=["dependency"],
)

# =============================================================================
# Run Metrics
# =============================================================================

unit_outcomes_counter = _create_counter(
    "inventory_unit_outcomes_total",
    "Units of work finished, by kind and final state",
    labelnames=["unit_kind", "state"],
)

last_run_success_gauge = _create_gauge(
    "inventory_last_run_success",
    "1 if the most recent export run succeeded, else 0",
)


def _operation_label(operation_name: str) -> str:
    # "fetch_page:users" -> "fetch_page"; ids never become label values
    return operation_name.split(":", 1)[0]


def record_retry_attempt(operation_name: str, attempt: int, outcome: str, elapsed_ms: float) -> None:
    """RetryExecutor on_attempt callback."""
    retry_attempts_counter.labels(operation=_operation_label(operation_name), outcome=outcome).inc()


def record_batch(entity_type: str, payload_bytes: int, success: bool) -> None:
    outcome = "sent" if success else "failed"
    batches_sent_counter.labels(entity_type=entity_type, outcome=outcome).inc()
    batch_size_histogram.observe(payload_bytes)
    if success:
        payload_bytes_counter.labels(entity_type=entity_type).inc(payload_bytes)


def record_dependency(dependency: str, duration_ms: float, success: bool) -> None:
    dependency_calls_counter.labels(dependency=dependency, success=str(success).lower()).inc()
    dependency_duration_histogram.labels(dependency=dependency).observe(duration_ms / 1000)


def record_unit_outcome(unit_kind: str, state: str) -> None:
    unit_outcomes_counter.labels(unit_kind=unit_kind, state=state).inc()


def start_metrics_server(port: int) -> None:
    """Expose REGISTRY on http://0.0.0.0:<port>/metrics."""
    start_http_server(port, registry=REGISTRY)
    logger.info("Metrics server started", extra={"target": f"http://0.0.0.0:{port}/metrics"})


__all__ = [
    "REGISTRY",
    "records_exported_counter",
    "batches_sent_counter",
    "payload_bytes_counter",
    "batch_size_histogram",
    "oversized_envelopes_counter",
    "retry_attempts_counter",
    "dependency_calls_counter",
    "dependency_duration_histogram",
    "unit_outcomes_counter",
    "last_run_success_gauge",
    "record_retry_attempt",
    "record_batch",
    "record_dependency",
    "record_unit_outcome",
    "start_metrics_server",
]
