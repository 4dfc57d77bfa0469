"""
quiver.registry.reference — Image reference parsing.

    myapp                                           → myapp:latest (Docker Hub)
    alice/myapp:v1                                  → Docker Hub
    ghcr.io/acme/api:v1                             → GHCR
    gcr.io/my-project/api:v1                        → GCR
    us-central1-docker.pkg.dev/my-project/repo/api  → Artifact Registry
    123456789012.dkr.ecr.us-east-1.amazonaws.com/r  → ECR
    myregistry.azurecr.io/api:v1                    → ACR

Resolution has two phases. parse_reference() is purely syntactic and
rejects malformed input. qualify() completes short cloud names ("myapp:v1")
with the project/account/region identifiers found by the credential
cascade. Neither phase touches the network.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping

from quiver.errors import InvalidReferenceError


DEFAULT_TAG = "latest"
DEFAULT_GAR_REGION = "us-central1"

DOCKER_HUB_HOSTS = ("docker.io", "index.docker.io", "registry-1.docker.io")
GHCR_HOST = "ghcr.io"
GCR_HOST = "gcr.io"

_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_SEGMENT_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")


class RegistryKind(str, Enum):
    DOCKER_HUB = "dockerhub"
    ECR = "ecr"
    ACR = "acr"
    GCR = "gcr"
    ARTIFACT_REGISTRY = "artifactregistry"
    GHCR = "ghcr"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_google(self) -> bool:
        return self in (RegistryKind.GCR, RegistryKind.ARTIFACT_REGISTRY)


_LABELS = {
    RegistryKind.DOCKER_HUB: "Docker Hub",
    RegistryKind.ECR: "ECR",
    RegistryKind.ACR: "ACR",
    RegistryKind.GCR: "GCR",
    RegistryKind.ARTIFACT_REGISTRY: "Artifact Registry",
    RegistryKind.GHCR: "GHCR",
}


@dataclass(frozen=True)
class ImageReference:
    """A normalized image reference.

    registry_host is empty for short names (implicit Docker Hub, or a
    cloud name still waiting for qualify()). account_id/region are only
    set for ECR; project_id for GCR and Artifact Registry.
    """
    repository: str
    tag: str = DEFAULT_TAG
    registry_host: str = ""
    kind: RegistryKind = RegistryKind.DOCKER_HUB
    account_id: str = ""
    region: str = ""
    project_id: str = ""

    @property
    def name(self) -> str:
        if self.registry_host:
            return f"{self.registry_host}/{self.repository}"
        return self.repository

    @property
    def is_qualified(self) -> bool:
        return bool(self.registry_host)

    def with_host(self, host: str) -> ImageReference:
        return replace(self, registry_host=host)

    def with_repository(self, repository: str) -> ImageReference:
        return replace(self, repository=repository)

    def __str__(self) -> str:
        return f"{self.name}:{self.tag}"


def ecr_registry_host(account_id: str, region: str) -> str:
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"


def split_ecr_host(host: str) -> tuple[str, str]:
    """Extract (account, region) from an ECR registry host.

    Only the standard commercial partition is accepted:
    <account>.dkr.ecr.<region>.amazonaws.com
    """
    parts = host.split(".")
    if len(parts) != 6:
        raise InvalidReferenceError(
            host,
            "ECR hosts must look like <account>.dkr.ecr.<region>.amazonaws.com",
        )
    account, dkr, ecr, region, aws, com = parts
    if (dkr, ecr, aws, com) != ("dkr", "ecr", "amazonaws", "com"):
        raise InvalidReferenceError(
            host,
            "ECR hosts must look like <account>.dkr.ecr.<region>.amazonaws.com",
        )
    if not account or not region:
        raise InvalidReferenceError(host, "ECR account ID and region must not be empty")
    return account, region


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PARSE
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _split_tag(raw: str, image: str) -> tuple[str, str]:
    idx = image.rfind(":")
    # A colon followed by a path is a registry port, not a tag
    if idx == -1 or "/" in image[idx + 1:]:
        return image, DEFAULT_TAG
    tag = image[idx + 1:]
    if not tag:
        raise InvalidReferenceError(raw, "tag is empty")
    if not _TAG_RE.match(tag):
        raise InvalidReferenceError(raw, f"invalid tag '{tag}'")
    return image[:idx], tag


def _split_host(name: str) -> tuple[str, str]:
    first, sep, rest = name.partition("/")
    if sep and ("." in first or ":" in first or first == "localhost"):
        return first, rest
    return "", name


def _is_ecr_host(host: str) -> bool:
    parts = host.split(".")
    return "dkr" in parts and "ecr" in parts


def _detect_kind(host: str) -> RegistryKind:
    if not host or host in DOCKER_HUB_HOSTS:
        return RegistryKind.DOCKER_HUB
    if host == GHCR_HOST:
        return RegistryKind.GHCR
    if ".pkg.dev" in host:
        return RegistryKind.ARTIFACT_REGISTRY
    if host == GCR_HOST or host.endswith("." + GCR_HOST):
        return RegistryKind.GCR
    if _is_ecr_host(host):
        return RegistryKind.ECR
    if host.endswith(".azurecr.io"):
        return RegistryKind.ACR
    # Any other registry speaks plain username/password auth
    return RegistryKind.DOCKER_HUB


def _compatible(hint: RegistryKind, detected: RegistryKind) -> bool:
    if hint == detected:
        return True
    return hint.is_google and detected.is_google


def parse_reference(raw: str, kind: RegistryKind | str | None = None) -> ImageReference:
    """Parse an image string into an ImageReference.

    ``kind`` is the registry family the caller targets. It decides the
    kind of short names and must agree with any explicit cloud host.
    """
    hint = RegistryKind(kind) if kind is not None else None
    image = (raw or "").strip()
    if not image:
        raise InvalidReferenceError(raw, "image name is empty")
    if any(c.isspace() for c in image):
        raise InvalidReferenceError(raw, "image name contains whitespace")
    if "@" in image:
        raise InvalidReferenceError(raw, "digest references cannot be pushed; use a tag")

    name, tag = _split_tag(raw, image)
    host, repository = _split_host(name)

    segments = repository.split("/")
    if not repository or any(not s for s in segments):
        raise InvalidReferenceError(raw, "repository path is empty")
    for s in segments:
        if not _SEGMENT_RE.match(s):
            raise InvalidReferenceError(raw, f"invalid repository component '{s}'")

    detected = _detect_kind(host)

    if not host:
        resolved = hint or RegistryKind.DOCKER_HUB
        if resolved == RegistryKind.GHCR:
            raise InvalidReferenceError(raw, f"GHCR images must begin with {GHCR_HOST}/")
        return ImageReference(repository=repository, tag=tag, kind=resolved)

    if hint is not None and not _compatible(hint, detected):
        raise InvalidReferenceError(
            raw, f"host {host} is not a {hint.label} registry",
        )

    ref = ImageReference(repository=repository, tag=tag, registry_host=host, kind=detected)

    if detected == RegistryKind.GHCR:
        if len(segments) < 2:
            raise InvalidReferenceError(raw, f"expected {GHCR_HOST}/<owner>/<repo>")
    elif detected == RegistryKind.ECR:
        account, region = split_ecr_host(host)
        ref = replace(ref, account_id=account, region=region)
    elif detected.is_google:
        if len(segments) < 2:
            raise InvalidReferenceError(raw, f"expected {host}/<project>/<image>")
        region = ""
        if detected == RegistryKind.ARTIFACT_REGISTRY:
            if not host.endswith("-docker.pkg.dev"):
                raise InvalidReferenceError(raw, "expected <region>-docker.pkg.dev")
            region = host[: -len("-docker.pkg.dev")]
            if len(segments) < 3:
                raise InvalidReferenceError(
                    raw, f"expected {host}/<project>/<repository>/<image>",
                )
        ref = replace(ref, project_id=segments[0], region=region)

    return ref


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# QUALIFY
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def qualify(
    ref: ImageReference,
    identity: Mapping[str, str] | None = None,
    use_gcr: bool = False,
) -> ImageReference:
    """Complete a short cloud name with identity values.

    identity keys: region, repository, account_id (ECR); project_id,
    region, repository (GCR/Artifact Registry). ACR names get their host
    from the registry login server at authentication time.
    References that already carry a host are returned unchanged.
    """
    if ref.is_qualified:
        return ref
    identity = identity or {}
    kind = ref.kind

    if kind == RegistryKind.ECR:
        region = identity.get("region", "")
        if not region:
            raise InvalidReferenceError(str(ref), "an AWS region is required for ECR")
        account = identity.get("account_id", "")
        out = replace(
            ref,
            repository=identity.get("repository") or ref.repository,
            region=region,
            account_id=account,
        )
        # Without an account ID the host comes from the token's proxy endpoint
        if account:
            out = out.with_host(ecr_registry_host(account, region))
        return out

    if kind.is_google:
        project = identity.get("project_id", "")
        if not project:
            raise InvalidReferenceError(
                str(ref), "a GCP project ID is required for short GCR/Artifact Registry names",
            )
        if use_gcr:
            return replace(
                ref,
                kind=RegistryKind.GCR,
                registry_host=GCR_HOST,
                repository=f"{project}/{ref.repository}",
                project_id=project,
            )
        region = identity.get("region") or DEFAULT_GAR_REGION
        repo = identity.get("repository") or ref.repository
        return replace(
            ref,
            kind=RegistryKind.ARTIFACT_REGISTRY,
            registry_host=f"{region}-docker.pkg.dev",
            repository=f"{project}/{repo}/{ref.repository}",
            project_id=project,
            region=region,
        )

    return ref


def resolve_reference(
    raw: str,
    kind: RegistryKind | str | None = None,
    identity: Mapping[str, str] | None = None,
    use_gcr: bool = False,
) -> ImageReference:
    """parse_reference() followed by qualify()."""
    return qualify(parse_reference(raw, kind), identity, use_gcr=use_gcr)
