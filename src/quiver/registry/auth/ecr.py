"""
quiver.registry.auth.ecr — Amazon ECR.

  1. describe the target repository, create it when it does not exist
  2. get an authorization token
  3. base64-decode it into AWS:<password>

The password is issued per call and is never cached. Access keys from
quiver.yaml are used when set; otherwise boto3's own credential chain
applies (environment, profile, instance role).
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import replace
from typing import Any, Mapping

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from quiver.errors import AuthenticationUnavailableError, RegistryCredentialsUnavailableError
from quiver.registry.auth.base import Authenticator, Authorization
from quiver.registry.credentials import Credentials
from quiver.registry.reference import ImageReference, RegistryKind, split_ecr_host


logger = structlog.get_logger(__name__)


class ECRAuthenticator(Authenticator):
    kind = RegistryKind.ECR

    def __init__(self, values: Mapping[str, str] | None = None, client: Any = None) -> None:
        super().__init__(values)
        self._client = client

    def _ecr_client(self, region: str):
        if self._client is not None:
            return self._client
        kwargs: dict[str, Any] = {"region_name": region}
        if self.values.get("access_key_id") and self.values.get("secret_access_key"):
            kwargs["aws_access_key_id"] = self.values["access_key_id"]
            kwargs["aws_secret_access_key"] = self.values["secret_access_key"]
        return boto3.client("ecr", **kwargs)

    def ensure_repository(self, client, repository: str, account_id: str = "") -> bool:
        """Create the repository if missing. Returns True when created."""
        scope: dict[str, Any] = {"registryId": account_id} if account_id else {}
        try:
            client.describe_repositories(repositoryNames=[repository], **scope)
            return False
        except ClientError as e:
            if e.response["Error"]["Code"] != "RepositoryNotFoundException":
                raise RegistryCredentialsUnavailableError(
                    "ECR", f"cannot describe repository {repository}: {e}",
                ) from e

        try:
            client.create_repository(repositoryName=repository, **scope)
        except ClientError as e:
            # Lost a race with another pusher
            if e.response["Error"]["Code"] == "RepositoryAlreadyExistsException":
                return False
            raise RegistryCredentialsUnavailableError(
                "ECR", f"cannot create repository {repository}: {e}",
            ) from e
        logger.info("ecr_repository_created", repository=repository, account_id=account_id or None)
        return True

    def fetch_token(self, client) -> tuple[str, str, str]:
        """Return (username, password, registry host) from a fresh token."""
        try:
            response = client.get_authorization_token()
        except ClientError as e:
            raise RegistryCredentialsUnavailableError(
                "ECR", f"get_authorization_token failed: {e}",
            ) from e

        if not response.get("authorizationData"):
            raise RegistryCredentialsUnavailableError("ECR", "no authorization data in response")

        auth_data = response["authorizationData"][0]
        try:
            decoded = base64.b64decode(auth_data["authorizationToken"]).decode()
        except (KeyError, binascii.Error, UnicodeDecodeError) as e:
            raise RegistryCredentialsUnavailableError("ECR", "malformed authorization token") from e

        username, sep, password = decoded.partition(":")
        if not sep or not username or not password:
            raise RegistryCredentialsUnavailableError("ECR", "malformed authorization token")

        endpoint = auth_data.get("proxyEndpoint", "")
        host = endpoint.removeprefix("https://").removeprefix("http://").rstrip("/")
        return username, password, host

    def authenticate(self, ref: ImageReference) -> Authorization:
        region = ref.region or self.values.get("region", "")
        account_id = ref.account_id or self.values.get("account_id", "")

        try:
            client = self._ecr_client(region)
            self.ensure_repository(client, ref.repository, account_id)
            username, password, endpoint_host = self.fetch_token(client)
        except BotoCoreError as e:
            # No AWS credentials, unreachable endpoint, bad region...
            logger.debug("ecr_auth_failed", error=str(e))
            raise AuthenticationUnavailableError("ECR", ["aws credential chain"]) from e

        target = ref
        if not ref.registry_host:
            if not endpoint_host:
                raise RegistryCredentialsUnavailableError("ECR", "token has no proxy endpoint")
            account, endpoint_region = split_ecr_host(endpoint_host)
            target = replace(ref, registry_host=endpoint_host, account_id=account, region=endpoint_region)

        logger.debug("ecr_token_obtained", registry=target.registry_host)
        creds = Credentials(username, password, target.registry_host)
        return self._authorize(creds, target)
