"""Mapping of HTTP responses and requests failures onto typed export errors."""

import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from core.errors.exceptions import NetworkError, PipelineError, TimeoutError, error_from_status

BODY_EXCERPT_CHARS = 300


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After header as seconds. Accepts delta-seconds or an HTTP date."""
    if not value:
        return None
    value = value.strip()
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def strip_query(url: str) -> str:
    """URL without query string or fragment, for logs and metric targets."""
    parts = urlsplit(url)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def error_excerpt(response: requests.Response) -> str:
    """Short description of an error body (ARM/Graph error code + message when present)."""
    text = response.text or ""
    try:
        body: Any = json.loads(text)
    except ValueError:
        return text[:BODY_EXCERPT_CHARS]
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        code = error.get("code", "")
        message = error.get("message", "")
        return f"{code}: {message}"[:BODY_EXCERPT_CHARS]
    return text[:BODY_EXCERPT_CHARS]


def error_for_response(
    response: requests.Response,
    target: str,
    context: Optional[dict] = None,
) -> PipelineError:
    """Typed error for a non-success response."""
    status = response.status_code
    message = f"HTTP {status} from {strip_query(target)}: {error_excerpt(response)}"
    return error_from_status(
        status,
        message,
        retry_after=parse_retry_after(response.headers.get("Retry-After")),
        context=context,
    )


def error_for_request_exception(
    error: requests.RequestException,
    target: str,
    context: Optional[dict] = None,
) -> PipelineError:
    """Typed transient error for a request that never produced a response."""
    clean_target = strip_query(target)
    if isinstance(error, requests.Timeout):
        return TimeoutError(f"Request to {clean_target} timed out", cause=error, context=context)
    return NetworkError(f"Request to {clean_target} failed: {error}", cause=error, context=context)


__all__ = [
    "parse_retry_after",
    "strip_query",
    "error_excerpt",
    "error_for_response",
    "error_for_request_exception",
]
