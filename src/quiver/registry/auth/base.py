"""
quiver.registry.auth.base — Authenticator interface.

Every registry family ends in the same shape: a Credentials triple,
encoded as an AuthToken for the engine's push call. The push
orchestrator never looks inside it.
"""

from __future__ import annotations

import base64
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Mapping

from quiver.registry.credentials import Credentials
from quiver.registry.reference import ImageReference, RegistryKind


@dataclass(frozen=True)
class AuthToken:
    """URL-safe base64 of {"username", "password", "serveraddress"}."""
    encoded: str = field(repr=False)

    @classmethod
    def from_credentials(cls, creds: Credentials) -> AuthToken:
        record = {
            "username": creds.username,
            "password": creds.secret,
            "serveraddress": creds.server_address,
        }
        return cls(base64.urlsafe_b64encode(json.dumps(record).encode()).decode())

    def decode(self) -> dict[str, str]:
        return json.loads(base64.urlsafe_b64decode(self.encoded.encode()))

    @property
    def server_address(self) -> str:
        return self.decode().get("serveraddress", "")


@dataclass(frozen=True)
class Authorization:
    """A token plus the reference it is valid for.

    The target may differ from the requested reference when the registry
    decides the host (ECR proxy endpoint, ACR login server) or the
    namespace (Docker Hub user).
    """
    token: AuthToken
    target: ImageReference


class Authenticator(ABC):
    """Turns resolved values into a registry token for one reference."""

    kind: RegistryKind

    def __init__(self, values: Mapping[str, str] | None = None) -> None:
        self.values = dict(values or {})

    @abstractmethod
    def authenticate(self, ref: ImageReference) -> Authorization:
        """Return the token for ``ref``.

        Raises:
            InvalidReferenceError: ref is not valid for this registry.
            AuthenticationUnavailableError: no method produced a token.
            RegistryCredentialsUnavailableError: the registry has no secret.
        """

    def _authorize(self, creds: Credentials, target: ImageReference) -> Authorization:
        return Authorization(AuthToken.from_credentials(creds), target)
