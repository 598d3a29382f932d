"""
Event Hubs transmission over the REST send endpoint.

One Batch becomes one event: an HTTP POST of the batch's JSON array to
https://<namespace>.servicebus.windows.net/<hub>/messages with an Entra ID
bearer token for the Event Hubs audience.

EventHubTransmitter.send() raises typed errors so the retry executor can
classify them. BatchSender wraps it with retries and turns every non-fatal
failure into a SendResult value, so one bad batch never stops an export.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

from core.auth.credentials import EVENTHUB_RESOURCE
from core.errors.classifiers import PAYLOAD_TOO_LARGE, classify_error
from core.errors.exceptions import PayloadTooLargeError
from core.resilience.retry import RetryExecutor
from core.types import TokenProvider
from inventory_export import metrics
from inventory_export.batching.envelope import Batch
from inventory_export.responses import (
    error_excerpt,
    error_for_request_exception,
    error_for_response,
    strip_query,
)
from inventory_export.results import ErrorInfo
from inventory_export.telemetry import track_dependency

logger = logging.getLogger(__name__)

DEPENDENCY_NAME = "EventHub"
CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True)
class SendResult:
    """Outcome of sending one batch (after retries)."""

    success: bool
    envelope_count: int
    payload_bytes: int
    status_code: Optional[int] = None
    error: Optional[ErrorInfo] = None
    record_ids: tuple[str, ...] = ()

    @property
    def payload_too_large(self) -> bool:
        return self.error is not None and self.error.error_type == PAYLOAD_TOO_LARGE


class EventHubTransmitter:
    """
    Serializes a batch and POSTs it to the event hub.

    Args:
        token_provider: Source of bearer tokens (asked on every send)
        messages_url: Full send endpoint URL
        timeout: Request timeout in seconds
        session: requests.Session to reuse connections
        audience: Token audience (default: Event Hubs)
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        messages_url: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
        audience: str = EVENTHUB_RESOURCE,
    ):
        self.token_provider = token_provider
        self.messages_url = messages_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.audience = audience

    @classmethod
    def from_config(cls, sink_config, token_provider: TokenProvider, **kwargs) -> "EventHubTransmitter":
        return cls(
            token_provider=token_provider,
            messages_url=sink_config.messages_url,
            timeout=sink_config.timeout_seconds,
            **kwargs,
        )

    def send(self, batch: Batch) -> int:
        """
        Send one batch.

        Returns:
            HTTP status code of the accepted request (201 on success)

        Raises:
            AuthError / PermissionDeniedError: 401 / 403 (fatal)
            ConfigurationError: 404, the hub or namespace does not exist (fatal)
            PayloadTooLargeError: 413, carrying the batch's record ids
            ThrottlingError / ServerError / NetworkError / TimeoutError: transient
        """
        payload = batch.to_payload()
        # Fresh token per send; caching is the provider's concern
        token = self.token_provider.get_token(self.audience)
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": CONTENT_TYPE,
        }
        fields = {
            "batch_size": len(batch),
            "batch_bytes": len(payload),
            "resource_type": batch.entity_type,
        }

        started = time.perf_counter()
        try:
            response = self.session.post(
                self.messages_url, data=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            duration_ms = (time.perf_counter() - started) * 1000
            track_dependency(DEPENDENCY_NAME, strip_query(self.messages_url), duration_ms, False, **fields)
            raise error_for_request_exception(e, self.messages_url) from e

        duration_ms = (time.perf_counter() - started) * 1000
        ok = 200 <= response.status_code < 300
        track_dependency(
            DEPENDENCY_NAME,
            strip_query(self.messages_url),
            duration_ms,
            ok,
            http_status=response.status_code,
            **fields,
        )
        if ok:
            return response.status_code

        if response.status_code == 413:
            record_ids = batch.record_ids
            logger.error(
                "Event hub rejected batch as too large",
                extra={
                    "http_status": 413,
                    "batch_bytes": len(payload),
                    "batch_size": len(batch),
                    "resource_type": batch.entity_type,
                    "record_ids": record_ids,
                },
            )
            raise PayloadTooLargeError(
                f"HTTP 413 from {strip_query(self.messages_url)}: {error_excerpt(response)}",
                record_ids=record_ids,
                payload_bytes=len(payload),
            )

        raise error_for_response(response, self.messages_url)


class BatchSender:
    """
    Retrying front end of the transmitter.

    Fatal errors (credentials, permissions, missing hub) are re-raised so the
    orchestrator can halt the unit. Everything else becomes a failed
    SendResult once retries are exhausted.
    """

    def __init__(
        self,
        transmitter: EventHubTransmitter,
        retry: RetryExecutor,
        max_attempts: int = 3,
    ):
        self.transmitter = transmitter
        self.retry = retry
        self.max_attempts = max_attempts

    def send(self, batch: Batch) -> SendResult:
        payload_bytes = batch.size_bytes
        try:
            status = self.retry.execute(
                lambda: self.transmitter.send(batch),
                operation_name=f"send_batch:{batch.entity_type or 'batch'}",
                max_attempts=self.max_attempts,
            )
        except Exception as e:
            classification = classify_error(e)
            metrics.record_batch(batch.entity_type, payload_bytes, success=False)
            if classification.is_fatal:
                raise
            error = ErrorInfo.from_exception(e, stage="transmit", classification=classification)
            record_ids = tuple(getattr(e, "record_ids", None) or batch.record_ids)
            logger.error(
                "Batch transmission failed, continuing with next batch",
                extra={
                    "resource_type": batch.entity_type,
                    "batch_size": len(batch),
                    "batch_bytes": payload_bytes,
                    "error_type": classification.error_type,
                    "status_code": classification.http_status_code,
                    "error_message": str(e)[:200],
                },
            )
            return SendResult(
                success=False,
                envelope_count=len(batch),
                payload_bytes=payload_bytes,
                status_code=classification.http_status_code,
                error=error,
                record_ids=record_ids,
            )

        metrics.record_batch(batch.entity_type, payload_bytes, success=True)
        return SendResult(
            success=True,
            envelope_count=len(batch),
            payload_bytes=payload_bytes,
            status_code=status,
        )


__all__ = ["EventHubTransmitter", "BatchSender", "SendResult", "DEPENDENCY_NAME"]
