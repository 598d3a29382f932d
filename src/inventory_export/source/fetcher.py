"""
Cursor-based paged fetch from Microsoft Graph and Azure Resource Manager.

Both APIs return {"value": [...], "<next>": url} where the next-page link
is "@odata.nextLink" (Graph) or "nextLink" (ARM). Pages are fetched
strictly in cursor order; each page request runs through the retry
executor, so throttling and server errors are retried per page without
restarting the walk.
"""

import logging
import time
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from core.resilience.retry import RetryExecutor
from core.types import TokenProvider
from inventory_export.responses import (
    error_for_request_exception,
    error_for_response,
    strip_query,
)
from inventory_export.telemetry import track_dependency

logger = logging.getLogger(__name__)

NEXT_LINK_KEYS = ("@odata.nextLink", "nextLink")


@dataclass
class Page:
    items: list[dict[str, Any]] = field(default_factory=list)
    next_url: Optional[str] = None


def parse_page(body: Any) -> Page:
    """Extract items and the next-page link from a response body."""
    if not isinstance(body, dict):
        return Page()
    items = body.get("value")
    if items is None:
        items = []
    elif not isinstance(items, list):
        items = [items]
    next_url = next((body[k] for k in NEXT_LINK_KEYS if body.get(k)), None)
    return Page(items=items, next_url=next_url)


class PagedFetcher:
    """
    Walks paginated collections for one audience and tenant.

    Args:
        token_provider: Source of bearer tokens
        audience: Resource audience the tokens are requested for
        retry: Executor wrapping every page request
        tenant_id: Tenant to request tokens from (None = home tenant)
        session: requests.Session to reuse connections
        timeout: Per-request timeout in seconds
        dependency_name: Name reported in dependency telemetry ("Graph", "ARM")
        extra_headers: Headers added to every request
    """

    def __init__(
        self,
        token_provider: TokenProvider,
        audience: str,
        retry: RetryExecutor,
        tenant_id: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 120.0,
        dependency_name: str = "ARM",
        extra_headers: Optional[dict[str, str]] = None,
    ):
        self.token_provider = token_provider
        self.audience = audience
        self.tenant_id = tenant_id
        self.retry = retry
        self.session = session or requests.Session()
        self.timeout = timeout
        self.dependency_name = dependency_name
        self.extra_headers = dict(extra_headers or {})

    def _headers(self) -> dict[str, str]:
        token = self.token_provider.get_token(self.audience, tenant_id=self.tenant_id)
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        headers.update(self.extra_headers)
        return headers

    def _get(self, url: str, params: Optional[dict[str, Any]] = None) -> Any:
        started = time.perf_counter()
        headers = self._headers()
        try:
            response = self.session.get(url, headers=headers, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            duration_ms = (time.perf_counter() - started) * 1000
            track_dependency(self.dependency_name, strip_query(url), duration_ms, False)
            raise error_for_request_exception(e, url, context={"tenant_id": self.tenant_id}) from e

        duration_ms = (time.perf_counter() - started) * 1000
        ok = 200 <= response.status_code < 300
        track_dependency(
            self.dependency_name,
            strip_query(url),
            duration_ms,
            ok,
            http_status=response.status_code,
        )
        if not ok:
            raise error_for_response(response, url, context={"tenant_id": self.tenant_id})
        if not response.content:
            return {}
        return response.json()

    def fetch_page(self, url: str, params: Optional[dict[str, Any]] = None) -> Page:
        """Fetch one page, retrying transient failures."""
        body = self.retry.execute(
            lambda: self._get(url, params),
            operation_name=f"fetch_page:{self.dependency_name}",
        )
        return parse_page(body)

    def iter_pages(self, url: str, params: Optional[dict[str, Any]] = None) -> Iterator[Page]:
        """
        Yield pages in cursor order until the next link is absent.

        Query params apply to the first request only; next links already
        carry the full query.
        """
        seen: set[str] = set()
        page_number = 0
        next_url: Optional[str] = url
        next_params = params
        while next_url:
            page = self.fetch_page(next_url, next_params)
            page_number += 1
            logger.debug(
                "Fetched page",
                extra={
                    "url": strip_query(next_url),
                    "page_count": page_number,
                    "record_count": len(page.items),
                },
            )
            yield page

            seen.add(next_url)
            if page.next_url and page.next_url in seen:
                logger.warning(
                    "Pagination cursor repeated, stopping",
                    extra={"url": strip_query(page.next_url), "page_count": page_number},
                )
                break
            next_url = page.next_url
            next_params = None

    def iter_items(self, url: str, params: Optional[dict[str, Any]] = None) -> Iterator[dict[str, Any]]:
        for page in self.iter_pages(url, params):
            yield from page.items

    def fetch_all(self, url: str, params: Optional[dict[str, Any]] = None) -> list[dict[str, Any]]:
        return list(self.iter_items(url, params))

    def get_object(self, url: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Fetch a single (non-collection) object."""
        body = self.retry.execute(
            lambda: self._get(url, params),
            operation_name=f"get_object:{self.dependency_name}",
        )
        return body if isinstance(body, dict) else {}


__all__ = ["Page", "PagedFetcher", "parse_page", "NEXT_LINK_KEYS"]
