"""
quiver.registry.auth.static — Docker Hub and GHCR.

Both take a username and a long-lived secret (password or personal
access token) and use them as is.
"""

from __future__ import annotations

from dataclasses import replace

import structlog

from quiver.errors import InvalidReferenceError
from quiver.registry.auth.base import Authenticator, Authorization
from quiver.registry.credentials import Credentials
from quiver.registry.dockerconfig import DOCKER_HUB_AUTH_KEY
from quiver.registry.reference import (
    DOCKER_HUB_HOSTS,
    GHCR_HOST,
    ImageReference,
    RegistryKind,
)


logger = structlog.get_logger(__name__)


class DockerHubAuthenticator(Authenticator):
    """Docker Hub, or any registry that takes plain username/password.

    A bare Docker Hub name ("myapp") is pushed under the user's
    namespace ("docker.io/<username>/myapp").
    """

    kind = RegistryKind.DOCKER_HUB

    def authenticate(self, ref: ImageReference) -> Authorization:
        username = self.values.get("username", "")
        password = self.values.get("password", "")

        if ref.registry_host and ref.registry_host not in DOCKER_HUB_HOSTS:
            creds = Credentials(username, password, ref.registry_host)
            return self._authorize(creds, ref)

        repository = ref.repository
        if "/" not in repository:
            repository = f"{username}/{repository}"
        target = replace(ref, registry_host="docker.io", repository=repository)
        logger.debug("dockerhub_target", target=str(target))
        return self._authorize(Credentials(username, password, DOCKER_HUB_AUTH_KEY), target)


class GHCRAuthenticator(Authenticator):
    kind = RegistryKind.GHCR

    def authenticate(self, ref: ImageReference) -> Authorization:
        if ref.registry_host != GHCR_HOST:
            raise InvalidReferenceError(str(ref), f"GHCR images must begin with {GHCR_HOST}/")
        if "/" not in ref.repository:
            raise InvalidReferenceError(str(ref), f"expected {GHCR_HOST}/<owner>/<repo>")
        creds = Credentials(
            self.values.get("username", ""),
            self.values.get("token", ""),
            GHCR_HOST,
        )
        return self._authorize(creds, ref)
