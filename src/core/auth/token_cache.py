"""
Thread-safe token cache with expiration tracking.

Tokens are cached per (resource audience, tenant) pair. A single export run
talks to up to three audiences (ARM, Microsoft Graph, Event Hubs) across
several tenants, and a token issued by one tenant is useless in another.

A cached token is reused until it is TOKEN_REFRESH_MINS old or until the
issuer-reported expiry minus a safety margin, whichever comes first.

Example:
    >>> cache = TokenCache()
    >>> cache.set("https://management.azure.com/", "eyJ0eXAi...", tenant_id="t1")
    >>> cache.get("https://management.azure.com/", tenant_id="t1")
    'eyJ0eXAi...'
    >>> cache.get("https://management.azure.com/", tenant_id="t2") is None
    True
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

# Token timing constants
TOKEN_REFRESH_MINS = 50  # Refresh before expiry (Azure tokens: 60 min lifetime)
TOKEN_EXPIRY_MINS = 60  # Azure token lifetime
EXPIRY_MARGIN_SECS = 300  # Never hand out a token with less than 5 min left


def _cache_key(resource: str, tenant_id: Optional[str]) -> tuple[str, str]:
    # Trailing slash is not significant for audiences
    return (resource.rstrip("/"), tenant_id or "")


@dataclass
class CachedToken:
    """
    Token with acquisition timestamp for expiration tracking.

    Attributes:
        value: The access token string
        acquired_at: UTC timestamp when token was cached
        expires_on: Issuer-reported expiry as POSIX seconds, if known
    """

    value: str
    acquired_at: datetime
    expires_on: Optional[int] = None

    def is_valid(self, buffer_mins: int = TOKEN_REFRESH_MINS) -> bool:
        """
        Check if token is still valid with safety buffer.

        Args:
            buffer_mins: Maximum token age in minutes before it is refreshed.

        Returns:
            True if the token is younger than buffer_mins and not close to
            its reported expiry.
        """
        now = datetime.now(timezone.utc)
        if now - self.acquired_at >= timedelta(minutes=buffer_mins):
            return False
        if self.expires_on is not None:
            return now.timestamp() < self.expires_on - EXPIRY_MARGIN_SECS
        return True


class TokenCache:
    """
    Thread-safe cache for authentication tokens.

    All operations (get/set/clear) are protected by a threading.Lock so a
    provider can be shared by helpers running on other threads.
    """

    def __init__(self):
        """Initialize empty token cache with thread lock."""
        self._tokens: dict[tuple[str, str], CachedToken] = {}
        self._lock = threading.Lock()

    def get(self, resource: str, tenant_id: Optional[str] = None) -> Optional[str]:
        """
        Get cached token if still valid.

        Args:
            resource: Resource audience (e.g., "https://graph.microsoft.com/")
            tenant_id: Issuing tenant, None for the credential's home tenant

        Returns:
            Token string if cached and valid, None if expired or not found.
        """
        with self._lock:
            cached = self._tokens.get(_cache_key(resource, tenant_id))
            if cached and cached.is_valid():
                return cached.value
            return None

    def set(
        self,
        resource: str,
        token: str,
        tenant_id: Optional[str] = None,
        expires_on: Optional[int] = None,
    ) -> None:
        """
        Cache a token with current timestamp.

        Args:
            resource: Resource audience to cache for
            token: Access token string to cache
            tenant_id: Issuing tenant, None for the home tenant
            expires_on: Issuer-reported expiry (POSIX seconds), if known
        """
        with self._lock:
            self._tokens[_cache_key(resource, tenant_id)] = CachedToken(
                value=token,
                acquired_at=datetime.now(timezone.utc),
                expires_on=expires_on,
            )

    def clear(self, resource: Optional[str] = None, tenant_id: Optional[str] = None) -> None:
        """
        Clear one or all cached tokens.

        Args:
            resource: Specific audience to clear. If None, clears all tokens.
            tenant_id: Tenant of the entry to clear (only used with resource)
        """
        with self._lock:
            if resource:
                self._tokens.pop(_cache_key(resource, tenant_id), None)
            else:
                self._tokens.clear()

    def get_age(self, resource: str, tenant_id: Optional[str] = None) -> Optional[timedelta]:
        """Get age of cached token for diagnostics, or None if not cached."""
        with self._lock:
            cached = self._tokens.get(_cache_key(resource, tenant_id))
            if cached:
                return datetime.now(timezone.utc) - cached.acquired_at
            return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)


__all__ = [
    "TokenCache",
    "CachedToken",
    "TOKEN_REFRESH_MINS",
    "TOKEN_EXPIRY_MINS",
    "EXPIRY_MARGIN_SECS",
]
