"""Tests for EventEnvelope and Batch."""

import json

from helpers import TENANT_ID, make_envelope
from inventory_export.batching.envelope import Batch, EventEnvelope


class TestEventEnvelope:
    def test_wire_shape(self):
        envelope = EventEnvelope(
            odata_context="resources",
            resource_type="Microsoft.Compute/virtualMachines",
            data={"id": "/subscriptions/s/resourceGroups/rg/providers/x/vm1"},
            unit_id="s",
            export_id="x-1",
            resource_group="rg",
        )
        payload = json.loads(envelope.encode())
        assert payload["odataContext"] == "resources"
        assert payload["resourceType"] == "Microsoft.Compute/virtualMachines"
        assert payload["resourceGroup"] == "rg"
        assert payload["exportId"] == "x-1"
        assert "parentId" not in payload

    def test_size_is_encoded_length(self):
        envelope = make_envelope("u1")
        assert envelope.size == len(envelope.encode())

    def test_record_id_fallback(self):
        envelope = make_envelope(data={"displayName": "no id"})
        assert envelope.record_id == f"user@{TENANT_ID}"

    def test_non_ascii_counted_in_bytes(self):
        envelope = make_envelope(data={"id": "u1", "displayName": "Zoë Ångström"})
        assert envelope.size == len(envelope.encode())
        assert envelope.size > len(envelope.encode().decode("utf-8"))


class TestBatch:
    def test_empty_batch_is_two_bytes(self):
        batch = Batch()
        assert batch.size_bytes == 2
        assert batch.to_payload() == b"[]"

    def test_payload_is_json_array(self):
        batch = Batch(entity_type="Users")
        for record_id in ("a", "b"):
            envelope = make_envelope(record_id)
            batch.append(envelope, envelope.size)
        payload = batch.to_payload()
        assert len(payload) == batch.size_bytes
        assert [item["data"]["id"] for item in json.loads(payload)] == ["a", "b"]
        assert batch.record_ids == ["a", "b"]
