"""
quiver.registry.dockerconfig — Locally stored registry logins.

Reads and writes the docker CLI credential file so that logins made with
`docker login`, `gcloud auth configure-docker` or `quiver registry login`
are reused:

    ~/.docker/config.json ($DOCKER_CONFIG/config.json)
      auths:        {"ghcr.io": {"auth": base64("user:pass")}}
      credHelpers:  {"gcr.io": "gcloud"}
      credsStore:   "osxkeychain"

Helpers are invoked as `docker-credential-<name> get` with the server
address on stdin (macOS Keychain, secretservice, gcloud, ecr-login...).
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog

from quiver.errors import ConfigError


logger = structlog.get_logger(__name__)

DOCKER_HUB_AUTH_KEY = "https://index.docker.io/v1/"
_DOCKER_HUB_ALIASES = ("docker.io", "index.docker.io", "registry-1.docker.io", "")
HELPER_TIMEOUT = 5


@dataclass(frozen=True)
class StoredAuth:
    username: str
    password: str = field(repr=False)
    source: str = "auths"


def docker_config_path() -> Path:
    base = os.environ.get("DOCKER_CONFIG")
    if base:
        return Path(base) / "config.json"
    return Path.home() / ".docker" / "config.json"


def load_docker_config(path: Path | None = None) -> dict[str, Any]:
    cp = path or docker_config_path()
    if not cp.exists():
        return {}
    try:
        with open(cp) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Cannot parse {cp}: {e}") from e
    return data if isinstance(data, dict) else {}


def _candidate_keys(host: str) -> list[str]:
    host = host.rstrip("/")
    if host in _DOCKER_HUB_ALIASES or host == DOCKER_HUB_AUTH_KEY.rstrip("/"):
        return [DOCKER_HUB_AUTH_KEY, "docker.io", "index.docker.io", "registry-1.docker.io"]
    return [host, f"https://{host}", f"https://{host}/v1/", f"http://{host}"]


def _decode_inline(entry: dict[str, Any]) -> StoredAuth | None:
    blob = entry.get("auth")
    if blob:
        try:
            user, _, password = base64.b64decode(blob).decode().partition(":")
        except (binascii.Error, UnicodeDecodeError):
            logger.debug("docker_auth_entry_undecodable")
            return None
        if user and password:
            return StoredAuth(user, password)
    if entry.get("username") and entry.get("password"):
        return StoredAuth(entry["username"], entry["password"])
    return None


def _run_helper(helper: str, server: str) -> StoredAuth | None:
    binary = f"docker-credential-{helper}"
    try:
        result = subprocess.run(
            [binary, "get"],
            input=server,
            capture_output=True,
            text=True,
            timeout=HELPER_TIMEOUT,
        )
    except (FileNotFoundError, PermissionError, subprocess.TimeoutExpired) as e:
        logger.debug("docker_credential_helper_failed", helper=binary, error=type(e).__name__)
        return None
    if result.returncode != 0:
        logger.debug("docker_credential_helper_failed", helper=binary, returncode=result.returncode)
        return None
    try:
        creds = json.loads(result.stdout)
    except json.JSONDecodeError:
        logger.debug("docker_credential_helper_bad_output", helper=binary)
        return None
    username = creds.get("Username", "")
    secret = creds.get("Secret", "")
    if username and secret:
        return StoredAuth(username, secret, source=binary)
    return None


def get_auth(host: str, path: Path | None = None) -> StoredAuth | None:
    """Look up a stored login for a registry host, or None."""
    config = load_docker_config(path)
    if not config:
        return None
    keys = _candidate_keys(host)
    auths = config.get("auths") or {}
    helpers = config.get("credHelpers") or {}

    for key in keys:
        if key in helpers:
            found = _run_helper(helpers[key], key)
            if found:
                return found

    for key in keys:
        entry = auths.get(key)
        if isinstance(entry, dict):
            found = _decode_inline(entry)
            if found:
                return found

    store = config.get("credsStore")
    if store:
        for key in keys:
            # Desktop stores only list the servers they hold in auths
            if key in auths:
                found = _run_helper(store, key)
                if found:
                    return found
    return None


def store_auth(host: str, username: str, password: str, path: Path | None = None) -> Path:
    """Save an inline auths entry for host."""
    cp = path or docker_config_path()
    config = load_docker_config(cp)
    key = _candidate_keys(host)[0]
    blob = base64.b64encode(f"{username}:{password}".encode()).decode()
    config.setdefault("auths", {})[key] = {"auth": blob}
    cp.parent.mkdir(parents=True, exist_ok=True)
    with open(cp, "w") as f:
        json.dump(config, f, indent=2)
    os.chmod(cp, 0o600)
    return cp
