"""
quiver.registry.credentials — Credential cascade.

For each registry kind the values an authenticator needs are resolved
from ordered sources, first success wins:

  1. explicit      values passed by the caller (CLI flags)
  2. environment   registry-specific variables (DOCKER_USERNAME, ...)
  3. config        the registry section of quiver.yaml
  4. platform      stored docker logins, the ambient AWS profile region

The environment is only skipped when none of its variables is set. A
partially set environment stops the cascade; it is never merged with
config. Explicit values always overlay whatever source won, and end the cascade
on their own only when they cover every field.

For ECR, ACR and GCP the cascade yields identity inputs (region, project,
subscription...). The registry secret itself is fetched later by the
authenticator.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Callable, Generic, Iterable, Mapping, TypeVar

import structlog

from quiver.errors import MissingCredentialsError
from quiver.registry.reference import RegistryKind


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Credentials:
    """A (username, secret, server) triple. Lives for one push."""
    username: str
    secret: str = field(repr=False)
    server_address: str = ""


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# FIRST SUCCESS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@dataclass(frozen=True)
class Step(Generic[T]):
    """One named source in a fallback chain. ``run`` returns None when
    the source has nothing to offer."""
    name: str
    run: Callable[[], T | None]


@dataclass
class Outcome(Generic[T]):
    value: T | None
    source: str | None
    attempted: list[str]

    @property
    def ok(self) -> bool:
        return self.value is not None


def first_success(
    steps: Iterable[Step[T]],
    tolerate: tuple[type[BaseException], ...] = (),
) -> Outcome[T]:
    """Try steps in order and return the first value that is not None.

    Exceptions listed in ``tolerate`` count as "this source failed" and
    move on to the next step; anything else propagates. Every step is
    tried at most once.
    """
    attempted: list[str] = []
    for step in steps:
        attempted.append(step.name)
        try:
            value = step.run()
        except tolerate as e:
            logger.debug("fallback_step_failed", step=step.name, error=str(e))
            continue
        if value is not None:
            return Outcome(value, step.name, attempted)
    return Outcome(None, None, attempted)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PER-KIND FIELDS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
@dataclass(frozen=True)
class FieldSpec:
    name: str
    env: tuple[str, ...] = ()
    required: bool = False


@dataclass(frozen=True)
class CredentialSpec:
    kind: RegistryKind
    fields: tuple[FieldSpec, ...]
    hint: str = ""

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def required(self) -> list[str]:
        return [f.name for f in self.fields if f.required]

    def missing(self, values: Mapping[str, str]) -> list[str]:
        return [name for name in self.required if not values.get(name)]


_GCP_SPEC = CredentialSpec(
    RegistryKind.GCR,
    (
        FieldSpec("project_id", ("GOOGLE_CLOUD_PROJECT", "CLOUDSDK_CORE_PROJECT")),
        FieldSpec("region"),
        FieldSpec("repository"),
        FieldSpec("credentials_file"),
    ),
)

SPECS: dict[RegistryKind, CredentialSpec] = {
    RegistryKind.DOCKER_HUB: CredentialSpec(
        RegistryKind.DOCKER_HUB,
        (
            FieldSpec("username", ("DOCKER_USERNAME",), required=True),
            FieldSpec("password", ("DOCKER_PASSWORD",), required=True),
        ),
        hint="Pass --username/--password, set DOCKER_USERNAME and DOCKER_PASSWORD, "
             "or add registry.dockerhub to quiver.yaml",
    ),
    RegistryKind.GHCR: CredentialSpec(
        RegistryKind.GHCR,
        (
            FieldSpec("username", ("USERNAME_GITHUB", "GITHUB_USERNAME"), required=True),
            FieldSpec("token", ("TOKEN_GITHUB", "GITHUB_TOKEN"), required=True),
        ),
        hint="Pass --username/--token, set GITHUB_USERNAME and GITHUB_TOKEN, "
             "or add registry.ghcr to quiver.yaml",
    ),
    RegistryKind.ECR: CredentialSpec(
        RegistryKind.ECR,
        (
            FieldSpec("region", ("AWS_REGION", "AWS_DEFAULT_REGION"), required=True),
            FieldSpec("repository", ("ECR_REPOSITORY",)),
            FieldSpec("account_id", ("AWS_ACCOUNT_ID",)),
            FieldSpec("access_key_id"),
            FieldSpec("secret_access_key"),
        ),
        hint="Pass --region, set AWS_REGION, or add registry.ecr.region to quiver.yaml",
    ),
    RegistryKind.ACR: CredentialSpec(
        RegistryKind.ACR,
        (
            FieldSpec("subscription_id", ("AZURE_SUBSCRIPTION_ID",), required=True),
            FieldSpec("resource_group", ("AZURE_RESOURCE_GROUP",), required=True),
            FieldSpec("registry_name", ("AZURE_REGISTRY_NAME",), required=True),
        ),
        hint="Pass --subscription-id/--resource-group/--registry-name or add registry.acr to quiver.yaml",
    ),
    RegistryKind.GCR: _GCP_SPEC,
    RegistryKind.ARTIFACT_REGISTRY: _GCP_SPEC,
}


@dataclass(frozen=True)
class ResolvedValues:
    """Outcome of the cascade for one registry kind."""
    kind: RegistryKind
    values: Mapping[str, str] = field(repr=False)
    source: str
    attempted: tuple[str, ...]

    def get(self, key: str, default: str = "") -> str:
        return self.values.get(key) or default

    def credentials(self, server_address: str = "") -> Credentials:
        """Static username/secret view (Docker Hub, GHCR)."""
        secret = self.values.get("password") or self.values.get("token") or ""
        return Credentials(self.values.get("username", ""), secret, server_address)


def _clean(values: Mapping[str, str | None] | None, spec: CredentialSpec) -> dict[str, str]:
    if not values:
        return {}
    return {k: str(v) for k, v in values.items() if k in spec.names and v not in (None, "")}


def _from_env(spec: CredentialSpec, environ: Mapping[str, str]) -> tuple[dict[str, str], list[str]]:
    """Values from the environment, plus the variables that were looked for."""
    out: dict[str, str] = {}
    for f in spec.fields:
        for var in f.env:
            if environ.get(var):
                out[f.name] = environ[var]
                break
    return out, [v for f in spec.fields for v in f.env]


def resolve_credentials(
    kind: RegistryKind | str,
    explicit: Mapping[str, str | None] | None = None,
    environ: Mapping[str, str] | None = None,
    config_values: Mapping[str, str] | None = None,
    platform: Callable[[], Mapping[str, str] | None] | None = None,
) -> ResolvedValues:
    """Resolve the values one registry kind needs.

    Raises MissingCredentialsError when a required value is still empty.
    No network call is made here; ``platform`` only reads local state.
    """
    kind = RegistryKind(kind)
    spec = SPECS[kind]
    environ = os.environ if environ is None else environ
    explicit_values = _clean(explicit, spec)

    def from_explicit():
        # Ends the cascade only when every field was given
        if explicit_values and all(name in explicit_values for name in spec.names):
            return explicit_values
        return None

    def from_environment():
        found, _ = _from_env(spec, environ)
        if not found:
            return None
        merged = {**found, **explicit_values}
        missing = spec.missing(merged)
        if missing:
            unset = [v for f in spec.fields if f.name in missing for v in f.env[:1]]
            raise MissingCredentialsError(
                kind.label, missing, ["explicit", "environment"],
                hint=f"environment is partially set; also set {', '.join(unset)}",
            )
        return found

    def from_config():
        found = _clean(config_values, spec)
        if found and not spec.missing({**found, **explicit_values}):
            return found
        return None

    def from_platform():
        if platform is None:
            return None
        found = _clean(platform(), spec)
        if found and not spec.missing({**found, **explicit_values}):
            return found
        return None

    outcome = first_success([
        Step("explicit", from_explicit),
        Step("environment", from_environment),
        Step("config", from_config),
        Step("platform", from_platform),
    ])

    if not outcome.ok:
        if not spec.missing(explicit_values):
            # Explicit values alone cover what is mandatory; with nothing
            # mandatory the authenticator's own chain decides
            source = "explicit" if spec.required else "defaults"
            logger.debug("credentials_resolved", registry=kind.value, source=source)
            return ResolvedValues(kind, dict(explicit_values), source, tuple(outcome.attempted))
        raise MissingCredentialsError(
            kind.label,
            spec.missing(explicit_values),
            outcome.attempted,
            hint=spec.hint,
        )

    values = {**outcome.value, **explicit_values}
    logger.debug(
        "credentials_resolved",
        registry=kind.value,
        source=outcome.source,
        fields=sorted(values),
    )
    return ResolvedValues(kind, values, outcome.source, tuple(outcome.attempted))


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# PLATFORM FALLBACKS
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
def _stored_login(host: str, secret_field: str) -> Callable[[], dict[str, str] | None]:
    def lookup():
        from quiver.registry.dockerconfig import get_auth

        stored = get_auth(host)
        if stored is None:
            return None
        return {"username": stored.username, secret_field: stored.password}
    return lookup


def _aws_profile_region() -> dict[str, str] | None:
    import boto3

    region = boto3.session.Session().region_name
    return {"region": region} if region else None


def platform_fallback(kind: RegistryKind | str) -> Callable[[], Mapping[str, str] | None] | None:
    """Default step 4 for a registry kind, or None when it has none."""
    kind = RegistryKind(kind)
    if kind == RegistryKind.DOCKER_HUB:
        return _stored_login("docker.io", "password")
    if kind == RegistryKind.GHCR:
        return _stored_login("ghcr.io", "token")
    if kind == RegistryKind.ECR:
        return _aws_profile_region
    return None
