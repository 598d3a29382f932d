"""Shared JSON serialization utilities for wire payloads and log records."""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, (Path, UUID)):
        return True, str(obj)
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, (set, frozenset)):
        return True, sorted(obj, key=str)
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe JSON serializer for analytics-store compatibility.

    Keeps numeric fields numeric instead of converting everything to strings:
    - datetime/date → ISO 8601 string
    - Decimal → float
    - Path/UUID → string
    - Enums → value
    - sets → sorted list
    - Everything else → string (fallback)
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return str(obj)


def dumps_compact(obj: Any) -> bytes:
    """
    Serialize to compact UTF-8 JSON bytes.

    The byte length of this output is what counts against the sink's
    message size limit, so batch sizing must use exactly this encoding.
    """
    return json.dumps(
        obj,
        default=json_serializer,
        ensure_ascii=False,
        separators=(",", ":"),
    ).encode("utf-8")


__all__ = ["json_serializer", "dumps_compact"]
