"""
tests/test_reference.py — Image reference parsing and qualification.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from quiver.errors import InvalidReferenceError
from quiver.registry.reference import (
    ImageReference,
    RegistryKind,
    ecr_registry_host,
    parse_reference,
    qualify,
    resolve_reference,
    split_ecr_host,
)


# ─────────────────────────────────────────────
# PARSE
# ─────────────────────────────────────────────
class TestParse:
    @pytest.mark.parametrize("raw, expected", [
        ("myapp", "myapp:latest"),
        ("myapp:v1", "myapp:v1"),
        ("alice/myapp:v1", "alice/myapp:v1"),
        ("registry.internal/team/myapp:1.2.3", "registry.internal/team/myapp:1.2.3"),
        ("localhost:5000/myapp", "localhost:5000/myapp:latest"),
        ("localhost:5000/myapp:dev", "localhost:5000/myapp:dev"),
    ])
    def test_normalized_form(self, raw, expected):
        assert str(parse_reference(raw)) == expected

    def test_default_tag(self):
        ref = parse_reference("myapp")
        assert ref.tag == "latest"
        assert ref.repository == "myapp"
        assert ref.registry_host == ""
        assert ref.kind == RegistryKind.DOCKER_HUB

    def test_port_is_not_a_tag(self):
        ref = parse_reference("registry.local:5000/myapp")
        assert ref.registry_host == "registry.local:5000"
        assert ref.repository == "myapp"
        assert ref.tag == "latest"

    def test_reparse_is_stable(self):
        once = parse_reference("ghcr.io/acme/api")
        twice = parse_reference(str(once))
        assert once == twice

    @pytest.mark.parametrize("raw", [
        "", "   ", "myapp:", "my app:v1", "myapp@sha256:" + "a" * 64,
        "ghcr.io/", "a//b", "MyApp:v1",
    ])
    def test_invalid(self, raw):
        with pytest.raises(InvalidReferenceError):
            parse_reference(raw)


class TestKindDetection:
    @pytest.mark.parametrize("raw, kind", [
        ("ghcr.io/acme/api:v1", RegistryKind.GHCR),
        ("gcr.io/my-project/api:v1", RegistryKind.GCR),
        ("eu.gcr.io/my-project/api:v1", RegistryKind.GCR),
        ("us-central1-docker.pkg.dev/my-project/repo/api:v1", RegistryKind.ARTIFACT_REGISTRY),
        ("123456789012.dkr.ecr.us-east-1.amazonaws.com/myrepo:v1", RegistryKind.ECR),
        ("myregistry.azurecr.io/api:v1", RegistryKind.ACR),
        ("docker.io/library/nginx", RegistryKind.DOCKER_HUB),
        ("harbor.internal/team/api", RegistryKind.DOCKER_HUB),
    ])
    def test_detect(self, raw, kind):
        assert parse_reference(raw).kind == kind

    def test_ghcr_requires_owner_and_repo(self):
        with pytest.raises(InvalidReferenceError, match="owner"):
            parse_reference("ghcr.io/acme")

    def test_ghcr_hint_requires_host(self):
        with pytest.raises(InvalidReferenceError, match="ghcr.io"):
            parse_reference("myapp:v1", RegistryKind.GHCR)

    def test_hint_conflicting_with_host(self):
        with pytest.raises(InvalidReferenceError, match="not a ECR"):
            parse_reference("ghcr.io/acme/api", RegistryKind.ECR)

    def test_generic_host_rejected_for_cloud_kind(self):
        with pytest.raises(InvalidReferenceError):
            parse_reference("harbor.internal/api", RegistryKind.ACR)

    def test_gcr_and_artifact_registry_are_interchangeable(self):
        ref = parse_reference("gcr.io/my-project/api", RegistryKind.ARTIFACT_REGISTRY)
        assert ref.kind == RegistryKind.GCR
        assert ref.project_id == "my-project"

    def test_artifact_registry_fields(self):
        ref = parse_reference("europe-west1-docker.pkg.dev/proj/repo/api:v2")
        assert ref.region == "europe-west1"
        assert ref.project_id == "proj"

    def test_artifact_registry_needs_repository(self):
        with pytest.raises(InvalidReferenceError):
            parse_reference("us-central1-docker.pkg.dev/proj/api")

    def test_short_name_takes_hint(self):
        assert parse_reference("myapp", RegistryKind.ECR).kind == RegistryKind.ECR


# ─────────────────────────────────────────────
# ECR HOSTS
# ─────────────────────────────────────────────
class TestECRHost:
    def test_split(self):
        assert split_ecr_host("123456789012.dkr.ecr.us-east-1.amazonaws.com") == (
            "123456789012", "us-east-1",
        )

    def test_round_trip(self):
        host = "210987654321.dkr.ecr.eu-central-1.amazonaws.com"
        account, region = split_ecr_host(host)
        assert ecr_registry_host(account, region) == host

    def test_extracted_on_parse(self):
        ref = parse_reference("123456789012.dkr.ecr.us-east-1.amazonaws.com/myrepo:v1")
        assert ref.account_id == "123456789012"
        assert ref.region == "us-east-1"
        assert ref.repository == "myrepo"

    @pytest.mark.parametrize("host", [
        "dkr.ecr.us-east-1.amazonaws.com",
        "123.dkr.ecr.amazonaws.com",
        ".dkr.ecr.us-east-1.amazonaws.com",
        "123456789012.dkr.ecr..amazonaws.com",
        "123456789012.dkr.ecr.cn-north-1.amazonaws.com.cn",
    ])
    def test_malformed(self, host):
        with pytest.raises(InvalidReferenceError):
            parse_reference(f"{host}/myrepo:v1")


# ─────────────────────────────────────────────
# QUALIFY
# ─────────────────────────────────────────────
class TestQualify:
    def test_ecr_short_name(self):
        ref = resolve_reference(
            "myapp:v1", RegistryKind.ECR,
            {"region": "us-east-1", "repository": "myrepo", "account_id": "123456789012"},
        )
        assert str(ref) == "123456789012.dkr.ecr.us-east-1.amazonaws.com/myrepo:v1"

    def test_ecr_without_account_waits_for_endpoint(self):
        ref = resolve_reference("myapp:v1", RegistryKind.ECR, {"region": "us-east-1"})
        assert ref.registry_host == ""
        assert ref.region == "us-east-1"
        assert ref.repository == "myapp"

    def test_ecr_requires_region(self):
        with pytest.raises(InvalidReferenceError, match="region"):
            resolve_reference("myapp:v1", RegistryKind.ECR, {})

    def test_artifact_registry_defaults(self):
        ref = resolve_reference("myapp:v1", RegistryKind.ARTIFACT_REGISTRY, {"project_id": "proj"})
        assert str(ref) == "us-central1-docker.pkg.dev/proj/myapp/myapp:v1"
        assert ref.kind == RegistryKind.ARTIFACT_REGISTRY

    def test_artifact_registry_configured(self):
        ref = resolve_reference(
            "myapp:v1", RegistryKind.ARTIFACT_REGISTRY,
            {"project_id": "proj", "region": "europe-west4", "repository": "apps"},
        )
        assert str(ref) == "europe-west4-docker.pkg.dev/proj/apps/myapp:v1"

    def test_legacy_gcr(self):
        ref = resolve_reference("myapp:v1", RegistryKind.GCR, {"project_id": "proj"}, use_gcr=True)
        assert str(ref) == "gcr.io/proj/myapp:v1"
        assert ref.kind == RegistryKind.GCR

    def test_google_requires_project(self):
        with pytest.raises(InvalidReferenceError, match="project"):
            resolve_reference("myapp", RegistryKind.GCR, {})

    def test_qualified_reference_unchanged(self):
        ref = parse_reference("123456789012.dkr.ecr.us-east-1.amazonaws.com/myrepo:v1")
        assert qualify(ref, {"region": "eu-west-1", "repository": "other"}) is ref

    def test_docker_hub_unchanged(self):
        ref = ImageReference("myapp", "v1")
        assert qualify(ref, {"username": "alice"}) == ref
