"""
quiver.registry.auth — One authenticator per registry family.

    DOCKER_HUB         static username/password          static.py
    GHCR               static username/token             static.py
    ECR                token exchange + repo creation    ecr.py
    ACR                admin credentials via mgmt API    acr.py
    GCR / ARTIFACT     4-step OAuth fallback             gcp.py
"""

from __future__ import annotations

from typing import Any, Mapping

from quiver.registry.auth.base import Authenticator, Authorization, AuthToken
from quiver.registry.reference import RegistryKind


def create_authenticator(
    kind: RegistryKind | str,
    values: Mapping[str, str] | None = None,
    **kwargs: Any,
) -> Authenticator:
    """Build the authenticator for a registry kind.

    ``values`` is the cascade output; keyword arguments are passed to the
    implementation (injected SDK clients in tests).
    """
    kind = RegistryKind(kind)

    if kind == RegistryKind.DOCKER_HUB:
        from quiver.registry.auth.static import DockerHubAuthenticator
        return DockerHubAuthenticator(values, **kwargs)

    if kind == RegistryKind.GHCR:
        from quiver.registry.auth.static import GHCRAuthenticator
        return GHCRAuthenticator(values, **kwargs)

    if kind == RegistryKind.ECR:
        from quiver.registry.auth.ecr import ECRAuthenticator
        return ECRAuthenticator(values, **kwargs)

    if kind == RegistryKind.ACR:
        from quiver.registry.auth.acr import ACRAuthenticator
        return ACRAuthenticator(values, **kwargs)

    if kind.is_google:
        from quiver.registry.auth.gcp import GCPAuthenticator
        return GCPAuthenticator(values, **kwargs)

    raise ValueError(f"Unknown registry kind: {kind}")


__all__ = [
    "Authenticator",
    "Authorization",
    "AuthToken",
    "create_authenticator",
]
