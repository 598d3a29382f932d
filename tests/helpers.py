"""Shared fakes for the test suite."""

from typing import Any, Optional
from unittest.mock import Mock

from inventory_export.batching.envelope import EventEnvelope
from inventory_export.transport.transmitter import SendResult

TENANT_ID = "11111111-1111-1111-1111-111111111111"
SUBSCRIPTION_ID = "22222222-2222-2222-2222-222222222222"
OTHER_SUBSCRIPTION_ID = "33333333-3333-3333-3333-333333333333"


class FakeTokenProvider:
    """Token provider returning a fixed token and recording every request."""

    def __init__(self, token: str = "test-token", error: Optional[Exception] = None):
        self.token = token
        self.error = error
        self.calls: list[tuple[str, Optional[str]]] = []

    def get_token(self, resource: str, tenant_id: Optional[str] = None, force_refresh: bool = False) -> str:
        self.calls.append((resource, tenant_id))
        if self.error is not None:
            raise self.error
        return self.token


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    headers: Optional[dict[str, str]] = None,
    text: str = "",
) -> Mock:
    """requests.Response stand-in with the attributes the code reads."""
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    if json_body is not None:
        response.json.return_value = json_body
        response.content = b"{}"
    else:
        response.json.side_effect = ValueError("no json")
        response.content = text.encode()
    response.text = text
    return response


class FakeSender:
    """
    BatchSender stand-in that accepts every batch unless told otherwise.

    results are handed out in order; an exception in results is raised.
    """

    def __init__(self, results: Optional[list] = None):
        self.batches: list = []
        self.results = list(results or [])

    def send(self, batch):
        self.batches.append(batch)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return SendResult(success=True, envelope_count=len(batch), payload_bytes=batch.size_bytes, status_code=201)

    @property
    def envelopes(self) -> list:
        return [e for batch in self.batches for e in batch.envelopes]


def make_envelope(record_id: str = "u1", data: Optional[dict] = None, unit_id: str = TENANT_ID):
    return EventEnvelope(
        odata_context="users",
        resource_type="user",
        data=data if data is not None else {"id": record_id},
        unit_id=unit_id,
        export_id="x-20260101-000000-abcd",
    )
