"""
tests/test_cli.py — CLI tests.

Tests commands using Click CliRunner with the Docker engine replaced by
an in-memory fake.
"""

import base64
import json
import os
import sys

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from click.testing import CliRunner

from conftest import FakeEngine, docker_error

from quiver.cli import main


@pytest.fixture(autouse=True)
def fake_engine(monkeypatch):
    engine = FakeEngine()
    monkeypatch.setattr("quiver.registry.engine.DockerEngine", lambda *a, **k: engine)
    levels = []
    monkeypatch.setattr("quiver.logging.configure_logging", lambda level=None, fmt=None: levels.append(level))
    engine.log_levels = levels
    return engine


runner = CliRunner()

HUB_ENV = {"DOCKER_USERNAME": "alice", "DOCKER_PASSWORD": "pw"}


# ─────────────────────────────────────────────
# PUSH
# ─────────────────────────────────────────────
class TestPush:
    def test_push_hub(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"], env=HUB_ENV)
        assert result.exit_code == 0, result.output
        assert "✓ Pushed docker.io/alice/myapp:v1" in result.output
        assert "digest: sha256:" in result.output
        assert "a1: Pushed" in result.output
        assert fake_engine.pushes == [("push", "docker.io/alice/myapp:v1")]

    def test_push_hub_flags_win(self, fake_engine):
        result = runner.invoke(
            main, ["image", "push", "hub", "myapp:v1", "-y", "-u", "bob", "-p", "pw2"],
            env=HUB_ENV,
        )
        assert result.exit_code == 0, result.output
        assert fake_engine.tokens[0].decode()["username"] == "bob"

    def test_confirmation_declined(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1"], env=HUB_ENV, input="n\n")
        assert result.exit_code == 7
        assert "cancelled" in result.output
        assert fake_engine.pushes == []

    def test_confirmation_accepted(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1"], env=HUB_ENV, input="y\n")
        assert result.exit_code == 0, result.output
        assert "Push myapp:v1 to docker.io/alice/myapp:v1?" in result.output

    def test_missing_credentials(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"])
        assert result.exit_code == 3
        assert "Missing Docker Hub credentials" in result.output
        assert fake_engine.calls == []

    def test_invalid_ghcr_reference(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "ghcr", "ghcr.io/acme", "--yes"])
        assert result.exit_code == 2
        assert "Invalid image reference" in result.output

    def test_ghcr_requires_prefix(self):
        result = runner.invoke(
            main, ["image", "push", "ghcr", "myapp:v1", "--yes", "-u", "octo", "-t", "ghp_x"],
        )
        assert result.exit_code == 2
        assert "ghcr.io/" in result.output

    def test_push_ghcr(self, fake_engine):
        fake_engine.images.add("ghcr.io/acme/api:v1")
        result = runner.invoke(
            main, ["image", "push", "ghcr", "ghcr.io/acme/api:v1", "--yes"],
            env={"GITHUB_USERNAME": "octo", "GITHUB_TOKEN": "ghp_x"},
        )
        assert result.exit_code == 0, result.output
        assert fake_engine.tokens[0].decode()["serveraddress"] == "ghcr.io"

    def test_push_failure_exit_code(self, fake_engine):
        fake_engine.messages = [{"error": "denied: requested access to the resource is denied"}]
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"], env=HUB_ENV)
        assert result.exit_code == 5
        assert "denied" in result.output

    def test_missing_local_image(self, fake_engine):
        fake_engine.images.clear()
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"], env=HUB_ENV)
        assert result.exit_code == 4
        assert "not found locally" in result.output

    def test_delete_after_push(self, fake_engine):
        result = runner.invoke(
            main, ["image", "push", "hub", "myapp:v1", "--yes", "--delete"], env=HUB_ENV,
        )
        assert result.exit_code == 0, result.output
        assert ("remove", "docker.io/alice/myapp:v1") in fake_engine.calls
        assert "Removed local tag" in result.output

    def test_cleanup_failure_is_a_warning(self, fake_engine):
        fake_engine.remove_error = docker_error(409, "in use")
        result = runner.invoke(
            main, ["image", "push", "hub", "myapp:v1", "--yes", "--delete"], env=HUB_ENV,
        )
        assert result.exit_code == 0
        assert "Warning: Could not remove local image" in result.output

    def test_image_from_config(self, tmp_path, fake_engine):
        (tmp_path / "quiver.yaml").write_text(yaml.dump({
            "registry": {
                "image": "myapp:v1",
                "dockerhub": {"username": "carol", "password": "pw"},
            },
        }))
        result = runner.invoke(main, ["image", "push", "hub", "--yes"])
        assert result.exit_code == 0, result.output
        assert "docker.io/carol/myapp:v1" in result.output

    def test_config_option(self, tmp_path, fake_engine):
        path = tmp_path / "conf" / "custom.yaml"
        path.parent.mkdir()
        path.write_text(yaml.dump({"registry": {"dockerhub": {"username": "dave", "password": "pw"}}}))
        result = runner.invoke(main, ["--config", str(path), "image", "push", "hub", "myapp:v1", "-y"])
        assert result.exit_code == 0, result.output
        assert "docker.io/dave/myapp:v1" in result.output

    def test_no_image(self):
        result = runner.invoke(main, ["image", "push", "hub", "--yes"], env=HUB_ENV)
        assert result.exit_code == 2
        assert "No IMAGE given" in result.output

    def test_broken_config(self, tmp_path):
        (tmp_path / "quiver.yaml").write_text("- not a mapping\n")
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"], env=HUB_ENV)
        assert result.exit_code == 1
        assert "must contain a mapping" in result.output

    def test_aws_needs_region(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "aws", "myapp:v1", "--yes"])
        assert result.exit_code == 3
        assert "region" in result.output
        assert fake_engine.calls == []

    def test_gcp_needs_project(self, fake_engine):
        result = runner.invoke(main, ["image", "push", "gcp", "myapp:v1", "--yes"])
        assert result.exit_code == 2
        assert "project" in result.output

    def test_verbose(self, fake_engine):
        runner.invoke(main, ["-v", "image", "push", "hub", "myapp:v1", "--yes"], env=HUB_ENV)
        assert fake_engine.log_levels == ["DEBUG"]


# ─────────────────────────────────────────────
# TAG / REMOVE
# ─────────────────────────────────────────────
class TestLocal:
    def test_tag(self, fake_engine):
        result = runner.invoke(main, ["image", "tag", "myapp:v1", "registry.internal/myapp:v1"])
        assert result.exit_code == 0, result.output
        assert ("tag", "myapp:v1", "registry.internal/myapp:v1") in fake_engine.calls

    def test_tag_missing_source(self, fake_engine):
        result = runner.invoke(main, ["image", "tag", "nope:v1", "other:v1"])
        assert result.exit_code == 4

    def test_tag_needs_arguments(self):
        result = runner.invoke(main, ["image", "tag", "myapp:v1"])
        assert result.exit_code == 2

    def test_remove(self, fake_engine):
        result = runner.invoke(main, ["image", "remove", "myapp:v1", "--yes"])
        assert result.exit_code == 0, result.output
        assert ("remove", "myapp:v1") in fake_engine.calls

    def test_remove_declined(self, fake_engine):
        result = runner.invoke(main, ["image", "remove", "myapp:v1"], input="n\n")
        assert result.exit_code == 0
        assert "Aborted." in result.output
        assert fake_engine.calls == []

    def test_remove_missing(self, fake_engine):
        fake_engine.remove_error = docker_error(404, "No such image")
        result = runner.invoke(main, ["image", "remove", "myapp:v1", "-y"])
        assert result.exit_code == 1
        assert "not found locally" in result.output


# ─────────────────────────────────────────────
# REGISTRY / INIT
# ─────────────────────────────────────────────
class TestRegistryLogin:
    def test_login(self, tmp_path):
        result = runner.invoke(main, ["registry", "login", "ghcr.io", "-u", "octo", "-p", "ghp_x"])
        assert result.exit_code == 0, result.output
        data = json.loads((tmp_path / "docker" / "config.json").read_text())
        assert base64.b64decode(data["auths"]["ghcr.io"]["auth"]).decode() == "octo:ghp_x"

    def test_login_password_stdin(self, tmp_path):
        result = runner.invoke(
            main, ["registry", "login", "docker.io", "-u", "alice", "--password-stdin"],
            input="s3cret\n",
        )
        assert result.exit_code == 0, result.output
        data = json.loads((tmp_path / "docker" / "config.json").read_text())
        assert "https://index.docker.io/v1/" in data["auths"]

    def test_login_then_push_uses_stored_auth(self, fake_engine):
        runner.invoke(main, ["registry", "login", "docker.io", "-u", "erin", "-p", "pw"])
        result = runner.invoke(main, ["image", "push", "hub", "myapp:v1", "--yes"])
        assert result.exit_code == 0, result.output
        assert "docker.io/erin/myapp:v1" in result.output


class TestInit:
    def test_init(self, tmp_path):
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 0
        data = yaml.safe_load((tmp_path / "quiver.yaml").read_text())
        assert set(data["registry"]) >= {"dockerhub", "ecr", "acr", "gcp", "ghcr"}

    def test_init_loads_cleanly(self, tmp_path):
        from quiver.registry.config import load_config
        runner.invoke(main, ["init"])
        cfg = load_config()
        assert cfg.gcp.region == "us-central1"
        assert cfg.gcp.use_gcr is False

    def test_init_refuses_overwrite(self, tmp_path):
        (tmp_path / "quiver.yaml").write_text("registry: {}\n")
        result = runner.invoke(main, ["init"])
        assert result.exit_code == 1
        result = runner.invoke(main, ["init", "--force"])
        assert result.exit_code == 0
