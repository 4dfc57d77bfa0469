"""
quiver.registry.auth.gcp — GCR and Artifact Registry.

Authentication is identity based. Methods are tried in order, once each,
and the first that yields a token wins:

  1. stored docker login for the host (docker login, configure-docker)
  2. `gcloud auth print-access-token`
  3. service account key file ($GOOGLE_APPLICATION_CREDENTIALS, then
     registry.gcp.credentials_file in quiver.yaml)
  4. application default credentials

Tokens are pushed with the username "oauth2accesstoken".
"""

from __future__ import annotations

import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Mapping, Sequence

import google.auth
import structlog
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account

from quiver.errors import AuthenticationUnavailableError, ConfigError, InvalidReferenceError
from quiver.registry.auth.base import Authenticator, Authorization
from quiver.registry.credentials import Credentials, Step, first_success
from quiver.registry.reference import ImageReference, RegistryKind


logger = structlog.get_logger(__name__)

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
OAUTH_USERNAME = "oauth2accesstoken"

# Well-known install locations, tried before PATH
GCLOUD_PATHS = (
    "/usr/bin/gcloud",
    "/usr/local/bin/gcloud",
    "/opt/google-cloud-sdk/bin/gcloud",
    "~/google-cloud-sdk/bin/gcloud",
)
GCLOUD_TIMEOUT = 30

_FAILURES = (GoogleAuthError, OSError, ValueError, subprocess.SubprocessError, ConfigError)


def _runnable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class GCPAuthenticator(Authenticator):
    kind = RegistryKind.ARTIFACT_REGISTRY

    def __init__(
        self,
        values: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
        gcloud_paths: Sequence[str] = GCLOUD_PATHS,
        request_factory: Callable[[], Request] = Request,
    ) -> None:
        super().__init__(values)
        self._environ = os.environ if environ is None else environ
        self._gcloud_paths = gcloud_paths
        self._request_factory = request_factory

    # ── methods ──────────────────────────────────
    def from_stored_login(self, host: str) -> Credentials | None:
        from quiver.registry.dockerconfig import get_auth

        stored = get_auth(host)
        if stored is None:
            return None
        return Credentials(stored.username, stored.password, host)

    def _gcloud_binary(self) -> str | None:
        for candidate in self._gcloud_paths:
            path = Path(candidate).expanduser()
            if _runnable(path):
                return str(path)
        search = self._environ.get("PATH")
        if not search:
            return None
        found = shutil.which("gcloud", path=search)
        if found and Path(found).is_absolute() and _runnable(Path(found)):
            return found
        return None

    def from_gcloud(self, host: str) -> Credentials | None:
        binary = self._gcloud_binary()
        if binary is None:
            return None
        # gcloud may need interpreters installed beside it
        env = {"PATH": os.pathsep.join([os.path.dirname(binary), "/usr/local/bin", "/usr/bin", "/bin"])}
        for var in ("HOME", "USER", "TMPDIR", "CLOUDSDK_CONFIG"):
            if self._environ.get(var):
                env[var] = self._environ[var]
        result = subprocess.run(
            [binary, "auth", "print-access-token"],
            capture_output=True,
            text=True,
            timeout=GCLOUD_TIMEOUT,
            env=env,
        )
        token = result.stdout.strip()
        if result.returncode != 0 or not token:
            logger.debug("gcloud_token_failed", returncode=result.returncode)
            return None
        return Credentials(OAUTH_USERNAME, token, host)

    def from_service_account(self, host: str) -> Credentials | None:
        path = self._environ.get("GOOGLE_APPLICATION_CREDENTIALS") or self.values.get("credentials_file")
        if not path:
            return None
        creds = service_account.Credentials.from_service_account_file(path, scopes=SCOPES)
        creds.refresh(self._request_factory())
        if not creds.token:
            return None
        return Credentials(OAUTH_USERNAME, creds.token, host)

    def from_default_credentials(self, host: str) -> Credentials | None:
        creds, _ = google.auth.default(scopes=SCOPES)
        creds.refresh(self._request_factory())
        if not creds.token:
            return None
        return Credentials(OAUTH_USERNAME, creds.token, host)

    # ── chain ────────────────────────────────────
    def authenticate(self, ref: ImageReference) -> Authorization:
        host = ref.registry_host
        if not host:
            raise InvalidReferenceError(str(ref), "a GCR or Artifact Registry host is required")

        outcome = first_success(
            [
                Step("stored docker login", lambda: self.from_stored_login(host)),
                Step("gcloud CLI", lambda: self.from_gcloud(host)),
                Step("service account key", lambda: self.from_service_account(host)),
                Step("application default credentials", lambda: self.from_default_credentials(host)),
            ],
            tolerate=_FAILURES,
        )
        if not outcome.ok:
            raise AuthenticationUnavailableError(ref.kind.label, outcome.attempted)

        logger.debug("gcp_auth_method_selected", method=outcome.source, registry=host)
        return self._authorize(outcome.value, ref)
