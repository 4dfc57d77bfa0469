"""
quiver.registry.config — quiver.yaml management.

./quiver.yaml (or $QUIVER_CONFIG):

    registry:
      image: myapp:v1
      target_image: ""
      dockerhub:
        username: alice
        password: ""
      ecr:
        region: us-east-1
        repository: myrepo
      acr:
        subscription_id: 00000000-0000-0000-0000-000000000000
        resource_group: my-rg
        registry_name: myregistry
      gcp:
        project_id: my-project
        credentials_file: /path/to/key.json
        region: us-central1
        use_gcr: false
      ghcr:
        username: alice
        token: ""

Only the fields set in the file are written back by save_config.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from quiver.errors import ConfigError


CONFIG_FILENAME = "quiver.yaml"


@dataclass
class DockerHubConfig:
    username: str = ""
    password: str = ""


@dataclass
class ECRConfig:
    region: str = ""
    repository: str = ""
    account_id: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""


@dataclass
class ACRConfig:
    subscription_id: str = ""
    resource_group: str = ""
    registry_name: str = ""


@dataclass
class GCPConfig:
    project_id: str = ""
    credentials_file: str = ""
    region: str = ""
    repository: str = ""
    use_gcr: bool = False


@dataclass
class GHCRConfig:
    username: str = ""
    token: str = ""


@dataclass
class QuiverConfig:
    """Contents of quiver.yaml."""
    image: str = ""
    target_image: str = ""
    dockerhub: DockerHubConfig = field(default_factory=DockerHubConfig)
    ecr: ECRConfig = field(default_factory=ECRConfig)
    acr: ACRConfig = field(default_factory=ACRConfig)
    gcp: GCPConfig = field(default_factory=GCPConfig)
    ghcr: GHCRConfig = field(default_factory=GHCRConfig)

    def registry_values(self, kind) -> dict[str, str]:
        """Flat scalar view of the section that backs a registry kind.

        Empty values are dropped so callers can tell "unset" from "set".
        """
        from quiver.registry.reference import RegistryKind

        section = {
            RegistryKind.DOCKER_HUB: self.dockerhub,
            RegistryKind.ECR: self.ecr,
            RegistryKind.ACR: self.acr,
            RegistryKind.GCR: self.gcp,
            RegistryKind.ARTIFACT_REGISTRY: self.gcp,
            RegistryKind.GHCR: self.ghcr,
        }[RegistryKind(kind)]
        out: dict[str, str] = {}
        for f in fields(section):
            value = getattr(section, f.name)
            if isinstance(value, bool) or value in ("", None):
                continue
            out[f.name] = str(value)
        return out


_SECTIONS = {
    "dockerhub": DockerHubConfig,
    "ecr": ECRConfig,
    "acr": ACRConfig,
    "gcp": GCPConfig,
    "ghcr": GHCRConfig,
}


def config_path() -> Path:
    env = os.environ.get("QUIVER_CONFIG")
    if env:
        return Path(env)
    return Path.cwd() / CONFIG_FILENAME


_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0", "")


def _as_bool(value: Any, where: str) -> bool:
    if value is None or isinstance(value, bool):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigError(f"{where} must be true or false, got {value!r}")


def _load_section(cls, data: Any, name: str):
    if data is None:
        return cls()
    if not isinstance(data, dict):
        raise ConfigError(f"registry.{name} must be a mapping")
    known = {f.name: f for f in fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key not in known:
            continue  # Unknown keys are tolerated
        if known[key].type in ("bool", bool):
            kwargs[key] = _as_bool(value, f"registry.{name}.{key}")
        else:
            kwargs[key] = "" if value is None else str(value)
    return cls(**kwargs)


def load_config(path: str | Path | None = None) -> QuiverConfig:
    """Read quiver.yaml. A missing file is an empty config."""
    cp = Path(path) if path else config_path()
    if not cp.exists():
        return QuiverConfig()

    try:
        with open(cp) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Cannot parse {cp}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{cp} must contain a mapping")

    reg = data.get("registry") or {}
    if not isinstance(reg, dict):
        raise ConfigError(f"{cp}: 'registry' must be a mapping")

    cfg = QuiverConfig()
    cfg.image = str(reg.get("image") or "")
    cfg.target_image = str(reg.get("target_image") or "")
    for name, cls in _SECTIONS.items():
        setattr(cfg, name, _load_section(cls, reg.get(name), name))
    return cfg


def save_config(cfg: QuiverConfig, path: str | Path | None = None) -> Path:
    """Write quiver.yaml, keeping only non-default fields."""
    cp = Path(path) if path else config_path()
    cp.parent.mkdir(parents=True, exist_ok=True)

    reg: dict[str, Any] = {}
    if cfg.image:
        reg["image"] = cfg.image
    if cfg.target_image:
        reg["target_image"] = cfg.target_image

    for name in _SECTIONS:
        section = getattr(cfg, name)
        entry = {
            f.name: getattr(section, f.name)
            for f in fields(section)
            if getattr(section, f.name) not in ("", False, None)
        }
        if entry:
            reg[name] = entry

    with open(cp, "w") as f:
        yaml.dump({"registry": reg}, f, default_flow_style=False, sort_keys=False)
    return cp
