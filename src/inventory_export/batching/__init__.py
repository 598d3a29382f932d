"""Envelopes, batches and the size-aware batcher."""

from inventory_export.batching.batcher import (
    DEFAULT_HARD_CAP_BYTES,
    DEFAULT_SINGLE_ITEM_THRESHOLD_BYTES,
    DEFAULT_TARGET_BYTES,
    SizeAwareBatcher,
)
from inventory_export.batching.envelope import Batch, EventEnvelope

__all__ = [
    "Batch",
    "EventEnvelope",
    "SizeAwareBatcher",
    "DEFAULT_TARGET_BYTES",
    "DEFAULT_HARD_CAP_BYTES",
    "DEFAULT_SINGLE_ITEM_THRESHOLD_BYTES",
]
