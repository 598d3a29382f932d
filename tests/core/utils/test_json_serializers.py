"""Tests for JSON serialization helpers."""

import json
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from pathlib import Path
from uuid import UUID

from core.utils.json_serializers import dumps_compact, json_serializer


class Color(Enum):
    RED = "red"


class TestJsonSerializer:
    def test_datetime_iso(self):
        value = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert json_serializer(value) == "2024-01-02T03:04:05+00:00"

    def test_date_iso(self):
        assert json_serializer(date(2024, 1, 2)) == "2024-01-02"

    def test_decimal_stays_numeric(self):
        assert json_serializer(Decimal("1.5")) == 1.5

    def test_uuid_and_path(self):
        assert json_serializer(UUID(int=1)) == "00000000-0000-0000-0000-000000000001"
        assert json_serializer(Path("a/b")) == str(Path("a/b"))

    def test_enum_value(self):
        assert json_serializer(Color.RED) == "red"

    def test_set_sorted(self):
        assert json_serializer({"b", "a"}) == ["a", "b"]

    def test_to_dict_objects(self):
        class WithDict:
            def to_dict(self):
                return {"k": 1}

        assert json_serializer(WithDict()) == {"k": 1}

    def test_fallback_to_str(self):
        assert json_serializer(object()).startswith("<object")


class TestDumpsCompact:
    def test_no_whitespace(self):
        assert dumps_compact({"a": 1, "b": [1, 2]}) == b'{"a":1,"b":[1,2]}'

    def test_non_ascii_kept_as_utf8(self):
        encoded = dumps_compact({"name": "Zoë"})
        assert encoded == '{"name":"Zoë"}'.encode("utf-8")
        assert len(encoded) == len('{"name":"Zoë"}') + 1

    def test_round_trips(self):
        payload = {"when": datetime(2024, 1, 1, tzinfo=timezone.utc), "n": 3}
        assert json.loads(dumps_compact(payload)) == {"when": "2024-01-01T00:00:00+00:00", "n": 3}
