"""
tests/conftest.py — Shared fixtures.

Every test runs with an empty working directory, an empty docker
credential store and no registry variables in the environment.
"""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import aiodocker


REGISTRY_VARS = (
    "DOCKER_USERNAME", "DOCKER_PASSWORD",
    "GITHUB_USERNAME", "GITHUB_TOKEN", "USERNAME_GITHUB", "TOKEN_GITHUB",
    "AWS_REGION", "AWS_DEFAULT_REGION", "AWS_ACCOUNT_ID", "ECR_REPOSITORY",
    "AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_PROFILE",
    "AZURE_SUBSCRIPTION_ID", "AZURE_RESOURCE_GROUP", "AZURE_REGISTRY_NAME",
    "GOOGLE_CLOUD_PROJECT", "CLOUDSDK_CORE_PROJECT", "GOOGLE_APPLICATION_CREDENTIALS",
    "QUIVER_CONFIG", "QUIVER_LOG_LEVEL", "QUIVER_LOG_FORMAT",
)


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    for var in REGISTRY_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("DOCKER_CONFIG", str(tmp_path / "docker"))
    monkeypatch.setenv("AWS_CONFIG_FILE", str(tmp_path / "aws" / "config"))
    monkeypatch.setenv("AWS_SHARED_CREDENTIALS_FILE", str(tmp_path / "aws" / "credentials"))
    monkeypatch.chdir(tmp_path)
    yield


def docker_error(status, message):
    return aiodocker.exceptions.DockerError(status, {"message": message})


PUSH_OK = [
    {"status": "The push refers to repository [docker.io/alice/myapp]"},
    {"status": "Preparing", "id": "a1"},
    {"status": "Preparing", "id": "b2"},
    {"status": "Waiting", "id": "b2"},
    {"status": "Pushing", "id": "a1", "progressDetail": {"current": 512, "total": 2048}},
    {"status": "Layer already exists", "id": "b2"},
    {"status": "Pushing", "id": "a1", "progressDetail": {"current": 2048, "total": 2048}},
    {"status": "Pushed", "id": "a1"},
    {"status": "v1: digest: sha256:" + "ab" * 32 + " size: 1570"},
    {"aux": {"Tag": "v1", "Digest": "sha256:" + "ab" * 32, "Size": 1570}},
]


class FakeEngine:
    """In-memory stand-in for DockerEngine."""

    def __init__(self, images=("myapp:v1",), messages=None,
                 tag_error=None, push_error=None, remove_error=None):
        self.images = set(images)
        self.messages = list(PUSH_OK if messages is None else messages)
        self.tag_error = tag_error
        self.push_error = push_error
        self.remove_error = remove_error
        self.calls = []
        self.tokens = []
        self.consumed = 0
        self.stream_closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return None

    async def inspect(self, name):
        self.calls.append(("inspect", name))
        if name in self.images:
            return {"Id": "sha256:" + "0" * 64, "RepoTags": [name]}
        return None

    async def tag(self, source, target):
        self.calls.append(("tag", source, str(target)))
        if self.tag_error:
            raise self.tag_error
        self.images.add(str(target))

    async def push(self, target, token):
        self.calls.append(("push", str(target)))
        self.tokens.append(token)
        if self.push_error:
            raise self.push_error
        try:
            for message in self.messages:
                self.consumed += 1
                yield message
        finally:
            self.stream_closed = True

    async def remove(self, target):
        self.calls.append(("remove", str(target)))
        if self.remove_error:
            raise self.remove_error
        self.images.discard(str(target))

    @property
    def pushes(self):
        return [c for c in self.calls if c[0] == "push"]


@pytest.fixture
def engine():
    return FakeEngine()
