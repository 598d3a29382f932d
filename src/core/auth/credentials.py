"""
Azure credential provider supporting multiple authentication methods.

This module provides a unified token interface for the three audiences the
inventory export talks to: Azure Resource Manager, Microsoft Graph, and
Event Hubs.

Supported Authentication Methods:
    - Managed Identity: user-assigned identity selected by client id
      (production default for the scheduled job)
    - Service Principal (Secret): client ID/secret for service accounts
    - Service Principal (Certificate): client ID/certificate for long-lived auth
    - Default Azure Credential: azure-identity's credential chain
      (environment variables, workload identity, Azure CLI, etc.)

Thread Safety:
    All credential operations use the shared TokenCache which is thread-safe.
    Credential objects are created once and reused.

Example:
    >>> provider = AzureCredentialProvider(managed_identity_client_id="...")
    >>> token = provider.get_token(MANAGEMENT_RESOURCE)

    >>> provider = AzureCredentialProvider(
    ...     client_id="...",
    ...     client_secret="...",
    ...     tenant_id="...",
    ... )
    >>> graph_token = provider.get_token(GRAPH_RESOURCE, tenant_id="other-tenant")
"""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from azure.core.exceptions import (
    ClientAuthenticationError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.identity import (
    CertificateCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    ManagedIdentityCredential,
)

from core.auth.token_cache import TokenCache
from core.errors.exceptions import AuthError, NetworkError

logger = logging.getLogger(__name__)


# Azure resource audiences
MANAGEMENT_RESOURCE = "https://management.azure.com/"
GRAPH_RESOURCE = "https://graph.microsoft.com/"
EVENTHUB_RESOURCE = "https://eventhubs.azure.net/"


class AzureAuthError(AuthError):
    """
    Raised when Azure authentication fails.

    Fatal for the current unit of work: retrying the same credential will
    not produce a different answer. Messages are written to be actionable.
    """

    pass


def resource_to_scope(resource: str) -> str:
    """Convert a resource audience URL to an OAuth2 scope (append /.default)."""
    return resource.rstrip("/") + "/.default"


class AzureCredentialProvider:
    """
    Unified Azure credential provider with multi-mode support.

    Mode priority when several are configured:
    1. Service Principal with Certificate
    2. Service Principal with Secret
    3. Managed Identity (explicit client id)
    4. Default Azure Credential

    Attributes:
        managed_identity_client_id: Client id of the user-assigned identity
        client_id: Azure AD client ID (for SPN auth)
        client_secret: Client secret (for secret-based SPN auth)
        tenant_id: Home tenant of the service principal
        certificate_path: Path to certificate file (for cert-based SPN auth)
    """

    def __init__(
        self,
        cache: Optional[TokenCache] = None,
        managed_identity_client_id: Optional[str] = None,
        use_default_credential: bool = False,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        tenant_id: Optional[str] = None,
        certificate_path: Optional[str] = None,
        credential: Any = None,
    ):
        """
        Initialize credential provider.

        Args:
            cache: Optional TokenCache instance (creates new if None)
            managed_identity_client_id: Use this user-assigned managed identity
            use_default_credential: Use DefaultAzureCredential
            client_id: Azure AD client ID (for SPN)
            client_secret: Client secret (for SPN with secret)
            tenant_id: Azure AD tenant ID (for SPN)
            certificate_path: Path to certificate (for SPN with cert)
            credential: Pre-built azure-identity credential (takes precedence)

        Note:
            If no authentication method is explicitly configured, the provider
            loads its configuration from environment variables.
        """
        self._cache = cache or TokenCache()
        self._credential = credential

        self.managed_identity_client_id = managed_identity_client_id
        self.use_default_credential = use_default_credential
        self.client_id = client_id
        self.client_secret = client_secret
        self.tenant_id = tenant_id
        self.certificate_path = certificate_path

        if credential is None and not any(
            [managed_identity_client_id, use_default_credential, client_id]
        ):
            self._load_config_from_env()

    def _load_config_from_env(self) -> None:
        """
        Load authentication configuration from environment variables.

        Environment Variables:
            AZURE_CLIENT_ID: Managed identity client id, or SPN client id
                when a secret/certificate is also present
            AZURE_CLIENT_SECRET: Service principal secret
            AZURE_TENANT_ID: Service principal home tenant
            AZURE_CERTIFICATE_PATH: Path to certificate for SPN auth
        """
        client_id = os.getenv("AZURE_CLIENT_ID")
        self.client_secret = os.getenv("AZURE_CLIENT_SECRET")
        self.tenant_id = os.getenv("AZURE_TENANT_ID")
        self.certificate_path = os.getenv("AZURE_CERTIFICATE_PATH")

        if client_id and (self.client_secret or self.certificate_path):
            self.client_id = client_id
        elif client_id:
            self.managed_identity_client_id = client_id
        else:
            self.use_default_credential = True

    @property
    def has_spn_credentials(self) -> bool:
        """True if SPN with secret OR certificate is configured."""
        has_secret = all([self.client_id, self.client_secret, self.tenant_id])
        has_cert = all([self.client_id, self.certificate_path, self.tenant_id])
        return has_secret or has_cert

    @property
    def auth_mode(self) -> str:
        """
        Get current authentication mode for diagnostics.

        Returns:
            "custom", "spn_cert", "spn_secret", "managed_identity",
            "default", or "none"
        """
        if self._credential is not None and not (
            self.has_spn_credentials
            or self.managed_identity_client_id
            or self.use_default_credential
        ):
            return "custom"
        if self.has_spn_credentials:
            if self.certificate_path:
                return "spn_cert"
            return "spn_secret"
        if self.managed_identity_client_id:
            return "managed_identity"
        if self.use_default_credential:
            return "default"
        return "none"

    @property
    def supports_tenant_selection(self) -> bool:
        """
        Whether tokens can be requested from a tenant other than the home tenant.

        Managed identities only receive tokens from their home tenant;
        cross-tenant reach comes from delegated resource management.
        """
        return self.auth_mode in ("spn_cert", "spn_secret", "default", "custom")

    def _get_azure_credential(self):
        """
        Get or create Azure credential object.

        Raises:
            AzureAuthError: If the configuration is invalid
        """
        if self._credential is not None:
            return self._credential

        if self.certificate_path and self.client_id and self.tenant_id:
            if not Path(self.certificate_path).exists():
                raise AzureAuthError(f"Certificate file not found: {self.certificate_path}")

            logger.info(
                "Using certificate-based Service Principal authentication",
                extra={"tenant_id": self.tenant_id, "client_id": self.client_id},
            )
            self._credential = CertificateCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                certificate_path=self.certificate_path,
                additionally_allowed_tenants=["*"],
            )
            return self._credential

        if self.client_secret and self.client_id and self.tenant_id:
            logger.debug(
                "Using client secret Service Principal authentication",
                extra={"tenant_id": self.tenant_id, "client_id": self.client_id},
            )
            self._credential = ClientSecretCredential(
                tenant_id=self.tenant_id,
                client_id=self.client_id,
                client_secret=self.client_secret,
                additionally_allowed_tenants=["*"],
            )
            return self._credential

        if self.managed_identity_client_id:
            logger.info(
                "Using user-assigned managed identity",
                extra={"client_id": self.managed_identity_client_id},
            )
            self._credential = ManagedIdentityCredential(
                client_id=self.managed_identity_client_id
            )
            return self._credential

        if self.use_default_credential:
            logger.info("Using DefaultAzureCredential (workload identity, env vars, CLI, etc.)")
            self._credential = DefaultAzureCredential(additionally_allowed_tenants=["*"])
            return self._credential

        raise AzureAuthError(
            "No valid Azure credential configuration found. "
            "Configure one of: managed identity (AZURE_CLIENT_ID), "
            "SPN (secret/cert), or DefaultAzureCredential"
        )

    def get_token(
        self,
        resource: str,
        tenant_id: Optional[str] = None,
        force_refresh: bool = False,
    ) -> str:
        """
        Get access token for the specified resource audience.

        Args:
            resource: Audience URL (MANAGEMENT_RESOURCE, GRAPH_RESOURCE, ...)
            tenant_id: Tenant to issue the token from (None = home tenant)
            force_refresh: Skip cache and fetch fresh token

        Returns:
            Access token string

        Raises:
            AzureAuthError: Credentials rejected or misconfigured (fatal)
            NetworkError: Token endpoint unreachable (retryable)
        """
        effective_tenant = tenant_id if self.supports_tenant_selection else None

        if not force_refresh:
            cached = self._cache.get(resource, effective_tenant)
            if cached:
                logger.debug("Using cached token", extra={"resource": resource})
                return cached

        credential = self._get_azure_credential()
        kwargs = {"tenant_id": effective_tenant} if effective_tenant else {}

        try:
            access_token = credential.get_token(resource_to_scope(resource), **kwargs)
        except ClientAuthenticationError as e:
            raise AzureAuthError(
                f"Failed to acquire token for {resource} "
                f"(auth mode: {self.auth_mode}, tenant: {tenant_id or 'home'}): {e}",
                cause=e,
                context={"resource": resource, "tenant_id": tenant_id},
            ) from e
        except (ServiceRequestError, ServiceResponseError, ConnectionError) as e:
            raise NetworkError(
                f"Token endpoint unreachable for {resource}: {e}",
                cause=e,
                context={"resource": resource, "tenant_id": tenant_id},
            ) from e

        token = access_token.token
        expires_on = getattr(access_token, "expires_on", None)
        self._cache.set(
            resource,
            token,
            tenant_id=effective_tenant,
            expires_on=expires_on if isinstance(expires_on, int) else None,
        )
        logger.debug(
            "Acquired token from Azure credential",
            extra={"resource": resource, "auth_mode": self.auth_mode},
        )
        return token

    def clear_cache(self, resource: Optional[str] = None, tenant_id: Optional[str] = None) -> None:
        """Clear cached tokens for one audience, or all when resource is None."""
        self._cache.clear(resource, tenant_id)
        logger.debug(
            "Cleared token cache",
            extra={"resource": resource if resource else "all"},
        )

    def get_diagnostics(self) -> dict:
        """Get authentication diagnostics for health checks."""
        diag = {
            "auth_mode": self.auth_mode,
            "default_credential_enabled": self.use_default_credential,
            "spn_configured": self.has_spn_credentials,
            "managed_identity_client_id": self.managed_identity_client_id,
            "cached_tokens": len(self._cache),
        }
        mgmt_age = self._cache.get_age(MANAGEMENT_RESOURCE)
        if mgmt_age:
            diag["management_token_age_seconds"] = mgmt_age.total_seconds()
        return diag


__all__ = [
    "AzureAuthError",
    "AzureCredentialProvider",
    "resource_to_scope",
    "MANAGEMENT_RESOURCE",
    "GRAPH_RESOURCE",
    "EVENTHUB_RESOURCE",
]
