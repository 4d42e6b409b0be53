"""TOML-based controller configuration and manifest loading.

Loads ~/.minik8s/defaults.toml (global) and minik8s.toml (project), merges
them, and builds typed settings::

    [provider]
    type = "docker"
    image = "kindest/node"

    [provider.network]
    cidr = "172.30.0.0/16"

    [controller]
    workers = 4
    failed_remediation = true

    [logging]
    level = "DEBUG"
"""

from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from minik8s.api.manifest import parse_manifest
from minik8s.api.model import Cluster
from minik8s.controller.reconciler import ControllerSettings
from minik8s.core.exceptions import InvalidConfigError
from minik8s.observability.logging import LogConfig
from minik8s.providers.docker.config import Docker, NetworkConfig, ResourceLimit, ResourceLimits

type RawConfig = dict[str, Any]

GLOBAL_CONFIG_PATH = Path.home() / ".minik8s" / "defaults.toml"
PROJECT_CONFIG_NAME = "minik8s.toml"

_SECTIONS = frozenset({"provider", "controller", "logging"})


@dataclass(frozen=True, slots=True)
class Settings:
    provider: Docker = field(default_factory=Docker)
    controller: ControllerSettings = field(default_factory=ControllerSettings)
    logging: LogConfig = field(default_factory=LogConfig)


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise InvalidConfigError(f"{path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    path: Path | None = None,
) -> RawConfig:
    """Merge global, project and (optionally) an explicit config file, in that order."""
    merged = _deep_merge(
        _read_toml(global_path or GLOBAL_CONFIG_PATH),
        _read_toml((project_dir or Path.cwd()) / PROJECT_CONFIG_NAME),
    )
    if path is not None:
        if not path.is_file():
            raise InvalidConfigError(f"config file not found: {path}")
        merged = _deep_merge(merged, _read_toml(path))
    return merged


def _build[T](cls: type[T], raw: RawConfig, section: str) -> T:
    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    if unknown := sorted(set(raw) - known):
        raise InvalidConfigError(f"unknown keys in [{section}]: {', '.join(unknown)}")
    try:
        return cls(**raw)
    except TypeError as e:
        raise InvalidConfigError(f"invalid [{section}]: {e}") from e


def _build_provider(raw: RawConfig) -> Docker:
    raw = dict(raw)
    match raw.pop("type", "docker"):
        case "docker":
            pass
        case other:
            raise InvalidConfigError(f"unknown provider type {other!r}. Valid: docker")

    raw_network = dict(raw.pop("network", {}))
    if "exposed_ports" in raw_network:
        raw_network["exposed_ports"] = tuple(raw_network["exposed_ports"])
    ok, network = _build(NetworkConfig, raw_network, "provider.network").validate_defaults()
    if not ok:
        raise InvalidConfigError(
            "[provider.network] needs a cidr and a subnet_mask between 16 and 28"
        )

    raw_limits = raw.pop("resource_limits", {})
    limits = _build(
        ResourceLimits,
        {
            name: _build(ResourceLimit, value, f"provider.resource_limits.{name}")
            for name, value in raw_limits.items()
        },
        "provider.resource_limits",
    )
    return _build(Docker, {**raw, "network": network, "resource_limits": limits}, "provider")


def load_settings(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
    path: Path | None = None,
) -> Settings:
    raw = load_config(project_dir=project_dir, global_path=global_path, path=path)
    if unknown := sorted(set(raw) - _SECTIONS):
        raise InvalidConfigError(f"unknown config sections: {', '.join(unknown)}")

    return Settings(
        provider=_build_provider(raw.get("provider", {})),
        controller=_build(ControllerSettings, raw.get("controller", {}), "controller"),
        logging=_build(LogConfig, raw.get("logging", {}), "logging"),
    )


def load_manifest(path: Path) -> Cluster:
    """Read a cluster manifest from a ``.json`` or ``.toml`` file."""
    try:
        match path.suffix:
            case ".toml":
                with path.open("rb") as f:
                    data = tomllib.load(f)
            case _:
                data = json.loads(path.read_text())
    except OSError as e:
        raise InvalidConfigError(f"cannot read manifest {path}: {e}") from e
    except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise InvalidConfigError(f"{path}: {e}") from e
    if not isinstance(data, dict):
        raise InvalidConfigError(f"{path}: manifest must be a single document")
    return parse_manifest(data)
