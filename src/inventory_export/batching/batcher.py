"""
Size-aware dynamic batching under a hard transport ceiling.

Boundary rule, applied to each added envelope of encoded length L, where
the projected size is the exact JSON array length after appending
(2 + L for an empty batch, current + 1 + L otherwise):

    1. 2 + L > hard_cap            the envelope is oversized. Seal the current
                                   batch if non-empty, then emit the envelope
                                   alone as a batch flagged oversized.
    2. projected > hard_cap        seal the current batch, start a new one
                                   holding the envelope.
    3. projected > target          same, when the current batch is non-empty.
    4. L > single_item_threshold   same, when the current batch is non-empty.
    5. otherwise                   append.

Every sealed batch except an oversized one is therefore <= hard_cap bytes,
and concatenating all emitted batches reproduces the input order exactly.
"""

import logging
from collections.abc import Callable
from typing import Optional

from core.logging.utilities import log_with_context
from inventory_export.batching.envelope import Batch, EventEnvelope

logger = logging.getLogger(__name__)

KIB = 1024
DEFAULT_TARGET_BYTES = 220 * KIB
DEFAULT_HARD_CAP_BYTES = 230 * KIB
DEFAULT_SINGLE_ITEM_THRESHOLD_BYTES = 150 * KIB


def encoded_size(envelope: EventEnvelope) -> int:
    return envelope.size


class SizeAwareBatcher:
    """
    Pure state machine turning envelopes into size-bounded batches.

    Usage:
        batcher = SizeAwareBatcher(entity_type="users")
        for envelope in envelopes:
            for batch in batcher.add(envelope):
                sender.send(batch)
        final = batcher.flush()
        if final:
            sender.send(final)
    """

    def __init__(
        self,
        entity_type: str = "",
        target_bytes: int = DEFAULT_TARGET_BYTES,
        hard_cap_bytes: int = DEFAULT_HARD_CAP_BYTES,
        single_item_threshold_bytes: int = DEFAULT_SINGLE_ITEM_THRESHOLD_BYTES,
        sizer: Callable[[EventEnvelope], int] = encoded_size,
    ):
        if not (0 < single_item_threshold_bytes <= target_bytes <= hard_cap_bytes):
            raise ValueError(
                "Batch limits must satisfy 0 < single_item_threshold <= target <= hard_cap, "
                f"got {single_item_threshold_bytes}/{target_bytes}/{hard_cap_bytes}"
            )
        self.entity_type = entity_type
        self.target_bytes = target_bytes
        self.hard_cap_bytes = hard_cap_bytes
        self.single_item_threshold_bytes = single_item_threshold_bytes
        self._sizer = sizer

        self._sequence = 0
        self._current = self._new_batch()
        self.envelopes_added = 0
        self.batches_sealed = 0
        self.oversized_count = 0

    @classmethod
    def from_config(cls, config, entity_type: str = "", **kwargs) -> "SizeAwareBatcher":
        """Build from a BatchingConfig."""
        return cls(
            entity_type=entity_type,
            target_bytes=config.target_bytes,
            hard_cap_bytes=config.hard_cap_bytes,
            single_item_threshold_bytes=config.single_item_threshold_bytes,
            **kwargs,
        )

    def _new_batch(self) -> Batch:
        self._sequence += 1
        return Batch(entity_type=self.entity_type, sequence=self._sequence)

    def _seal(self) -> Batch:
        sealed = self._current
        self._current = self._new_batch()
        self.batches_sealed += 1
        return sealed

    @property
    def pending(self) -> int:
        """Envelopes in the open batch."""
        return len(self._current)

    @property
    def pending_bytes(self) -> int:
        return 0 if self._current.is_empty else self._current.size_bytes

    def add(self, envelope: EventEnvelope) -> list[Batch]:
        """
        Add one envelope.

        Returns:
            Batches sealed by this call, in send order. Empty when the
            envelope was simply appended; two entries when an open batch
            was sealed ahead of an oversized envelope.
        """
        size = self._sizer(envelope)
        self.envelopes_added += 1
        sealed: list[Batch] = []

        if 2 + size > self.hard_cap_bytes:
            if not self._current.is_empty:
                sealed.append(self._seal())
            self._current.append(envelope, size)
            self._current.oversized = True
            self.oversized_count += 1
            log_with_context(
                logger,
                logging.WARNING,
                "Envelope exceeds batch hard cap, sending as single-item batch",
                resource_type=envelope.resource_type,
                envelope_bytes=size,
                hard_cap_bytes=self.hard_cap_bytes,
                record_ids=[envelope.record_id],
            )
            sealed.append(self._seal())
            return sealed

        projected = self._current.projected_size(size)
        if not self._current.is_empty and (
            projected > self.hard_cap_bytes
            or projected > self.target_bytes
            or size > self.single_item_threshold_bytes
        ):
            sealed.append(self._seal())

        self._current.append(envelope, size)
        return sealed

    def flush(self) -> Optional[Batch]:
        """Return and clear the partially filled batch, or None if empty."""
        if self._current.is_empty:
            return None
        return self._seal()


__all__ = [
    "SizeAwareBatcher",
    "encoded_size",
    "DEFAULT_TARGET_BYTES",
    "DEFAULT_HARD_CAP_BYTES",
    "DEFAULT_SINGLE_ITEM_THRESHOLD_BYTES",
]
