"""Paged source API access."""

from inventory_export.source.fetcher import NEXT_LINK_KEYS, Page, PagedFetcher, parse_page

__all__ = ["Page", "PagedFetcher", "parse_page", "NEXT_LINK_KEYS"]
