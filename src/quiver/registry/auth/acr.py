"""
quiver.registry.auth.acr — Azure Container Registry.

  1. get a management-plane token from DefaultAzureCredential
     (environment, managed identity, az CLI login...)
  2. registries.get            → login server
  3. registries.list_credentials → admin username + first password

Fails with RegistryCredentialsUnavailableError when the registry has the
admin user disabled.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Callable, Mapping

import structlog
from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from azure.identity import DefaultAzureCredential
from azure.mgmt.containerregistry import ContainerRegistryManagementClient

from quiver.errors import (
    AuthenticationUnavailableError,
    InvalidReferenceError,
    RegistryCredentialsUnavailableError,
)
from quiver.registry.auth.base import Authenticator, Authorization
from quiver.registry.credentials import Credentials
from quiver.registry.reference import ImageReference, RegistryKind


logger = structlog.get_logger(__name__)

MANAGEMENT_SCOPE = "https://management.azure.com/.default"


class ACRAuthenticator(Authenticator):
    kind = RegistryKind.ACR

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        credential: Any = None,
        client_factory: Callable[[Any, str], Any] | None = None,
    ) -> None:
        super().__init__(values)
        self._credential = credential
        self._client_factory = client_factory or ContainerRegistryManagementClient

    def _identity(self):
        credential = self._credential or DefaultAzureCredential()
        try:
            credential.get_token(MANAGEMENT_SCOPE)
        except AzureError as e:
            logger.debug("azure_identity_failed", error=str(e))
            raise AuthenticationUnavailableError("ACR", ["DefaultAzureCredential"]) from e
        return credential

    def admin_credentials(self, client, resource_group: str, registry_name: str) -> tuple[str, str, str]:
        """Return (login server, username, password)."""
        label = f"{registry_name} (resource group {resource_group})"
        try:
            registry = client.registries.get(resource_group, registry_name)
        except ResourceNotFoundError as e:
            raise RegistryCredentialsUnavailableError(label, "registry not found") from e
        except HttpResponseError as e:
            raise RegistryCredentialsUnavailableError(label, f"registry lookup failed: {e.message}") from e
        except AzureError as e:
            # Transport failures: DNS, refused connection, proxy
            raise RegistryCredentialsUnavailableError(label, f"cannot reach the management API: {e.message}") from e

        login_server = getattr(registry, "login_server", "") or ""
        if getattr(registry, "admin_user_enabled", None) is False:
            raise RegistryCredentialsUnavailableError(label, "admin user is disabled")

        try:
            result = client.registries.list_credentials(resource_group, registry_name)
        except HttpResponseError as e:
            raise RegistryCredentialsUnavailableError(label, f"cannot list credentials: {e.message}") from e
        except AzureError as e:
            raise RegistryCredentialsUnavailableError(label, f"cannot reach the management API: {e.message}") from e

        username = getattr(result, "username", "") or ""
        passwords = getattr(result, "passwords", None) or []
        password = (getattr(passwords[0], "value", "") or "") if passwords else ""
        if not login_server or not username or not password:
            raise RegistryCredentialsUnavailableError(label, "registry credentials are not available")
        return login_server, username, password

    def authenticate(self, ref: ImageReference) -> Authorization:
        subscription_id = self.values.get("subscription_id", "")
        resource_group = self.values.get("resource_group", "")
        registry_name = self.values.get("registry_name", "")

        credential = self._identity()
        client = self._client_factory(credential, subscription_id)
        login_server, username, password = self.admin_credentials(client, resource_group, registry_name)

        if ref.registry_host and ref.registry_host.lower() != login_server.lower():
            raise InvalidReferenceError(
                str(ref), f"registry {registry_name} has login server {login_server}",
            )

        target = replace(ref, registry_host=login_server)
        logger.debug("acr_credentials_obtained", login_server=login_server)
        return self._authorize(Credentials(username, password, login_server), target)
