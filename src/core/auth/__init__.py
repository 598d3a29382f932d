"""
Authentication module.

Provides bearer tokens for Azure Resource Manager, Microsoft Graph and
Event Hubs.

Components:
    - TokenCache: Thread-safe token caching keyed by audience and tenant
    - AzureCredentialProvider: managed identity, SPN (secret/cert) and
      DefaultAzureCredential behind a single get_token() call
"""

from .credentials import (
    EVENTHUB_RESOURCE,
    GRAPH_RESOURCE,
    MANAGEMENT_RESOURCE,
    AzureAuthError,
    AzureCredentialProvider,
    resource_to_scope,
)
from .token_cache import TOKEN_EXPIRY_MINS, TOKEN_REFRESH_MINS, CachedToken, TokenCache

__all__ = [
    "TokenCache",
    "CachedToken",
    "TOKEN_REFRESH_MINS",
    "TOKEN_EXPIRY_MINS",
    "AzureAuthError",
    "AzureCredentialProvider",
    "resource_to_scope",
    "MANAGEMENT_RESOURCE",
    "GRAPH_RESOURCE",
    "EVENTHUB_RESOURCE",
]
