"""
Core protocols used across modules.
"""

from typing import Optional, Protocol


class TokenProvider(Protocol):
    """
    Protocol for authentication token providers.

    Implementations return bearer tokens for a resource audience
    (management API, Microsoft Graph, Event Hubs).
    """

    def get_token(
        self,
        resource: str,
        tenant_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> str:
        """
        Get an access token for the specified resource audience.

        Args:
            resource: Resource URL, e.g. "https://management.azure.com/"
            tenant_id: Directory tenant to issue the token from (None = home tenant)
            force_refresh: Skip any cache and fetch a fresh token

        Returns:
            Access token string

        Raises:
            AuthError: If token acquisition fails
        """
        ...


__all__ = ["TokenProvider"]
