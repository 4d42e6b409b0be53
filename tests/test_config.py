from __future__ import annotations

import json
from pathlib import Path

import pytest

from minik8s.config import load_config, load_manifest, load_settings
from minik8s.core.exceptions import InvalidConfigError
from minik8s.providers.docker import Docker, NetworkConfig


@pytest.fixture
def global_toml(tmp_path: Path) -> Path:
    path = tmp_path / "global" / "defaults.toml"
    path.parent.mkdir()
    path.write_text(
        '[provider]\nimage = "registry.local/node"\n\n'
        '[provider.network]\ncidr = "10.50.0.0/16"\nenable_ipv6 = true\n\n'
        "[controller]\nworkers = 8\n"
    )
    return path


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    project = tmp_path / "project"
    project.mkdir()
    (project / "minik8s.toml").write_text(
        "[provider.network]\ncidr = \"172.30.0.0/16\"\nexposed_ports = [6443, 80]\n\n"
        "[controller]\nfailed_remediation = true\n\n"
        '[logging]\nlevel = "DEBUG"\n'
    )
    return project


def test_project_overrides_global(global_toml, project_dir):
    settings = load_settings(project_dir=project_dir, global_path=global_toml)

    assert settings.provider.image == "registry.local/node"
    assert settings.provider.network.cidr == "172.30.0.0/16"
    assert settings.provider.network.enable_ipv6 is True
    assert settings.provider.network.exposed_ports == (6443, 80)
    assert settings.controller.workers == 8
    assert settings.controller.failed_remediation is True
    assert settings.controller.running_requeue_interval == 30
    assert settings.logging.level == "DEBUG"


def test_defaults_when_no_files(tmp_path):
    settings = load_settings(project_dir=tmp_path, global_path=tmp_path / "missing.toml")

    assert settings.provider == Docker()
    assert settings.controller.failed_requeue_interval == 300


def test_explicit_file_wins(global_toml, project_dir, tmp_path):
    extra = tmp_path / "extra.toml"
    extra.write_text("[controller]\nworkers = 1\n")

    raw = load_config(project_dir=project_dir, global_path=global_toml, path=extra)

    assert raw["controller"] == {"workers": 1, "failed_remediation": True}


def test_missing_explicit_file_raises(tmp_path):
    with pytest.raises(InvalidConfigError):
        load_settings(project_dir=tmp_path, global_path=tmp_path / "g.toml", path=tmp_path / "nope.toml")


@pytest.mark.parametrize(
    "content",
    [
        "[controller]\nworkerz = 2\n",
        "[provider]\ntype = \"aws\"\n",
        "[provider.network]\nsubnet_mask = 8\n",
        "[provider.network]\ncidr = \"\"\n",
        "[pools]\nx = 1\n",
        "[controller\n",
    ],
)
def test_invalid_settings(tmp_path, content):
    (tmp_path / "minik8s.toml").write_text(content)

    with pytest.raises(InvalidConfigError):
        load_settings(project_dir=tmp_path, global_path=tmp_path / "g.toml")


def test_resource_limits_section(tmp_path):
    (tmp_path / "minik8s.toml").write_text(
        '[provider.resource_limits.memory]\ndefault = "2Gi"\nmax = "8Gi"\n'
    )

    settings = load_settings(project_dir=tmp_path, global_path=tmp_path / "g.toml")

    assert settings.provider.resource_limits.memory.default == "2Gi"
    assert settings.provider.resource_limits.memory.max == "8Gi"
    assert settings.provider.resource_limits.cpu.default == ""


def test_network_validate_defaults_fills_dns():
    ok, network = NetworkConfig(dns_nameserver="").validate_defaults()

    assert ok
    assert network.dns_nameserver == "8.8.8.8"


def test_merge_with_prefers_non_empty_fields():
    base = Docker()
    merged = base.merge_with(Docker(network=NetworkConfig(cidr="192.168.0.0/16", dns_nameserver="")))

    assert merged.network.cidr == "192.168.0.0/16"
    assert merged.network.dns_nameserver == "8.8.8.8"


def test_load_json_and_toml_manifests(tmp_path):
    json_path = tmp_path / "dev.json"
    json_path.write_text(json.dumps({
        "metadata": {"name": "dev"},
        "spec": {"kubernetesVersion": "v1.29.2", "workers": {"count": 2}},
    }))
    toml_path = tmp_path / "staging.toml"
    toml_path.write_text(
        '[metadata]\nname = "staging"\n\n[spec]\nkubernetesVersion = "v1.30.0"\n\n'
        "[spec.workers]\ncount = 3\n"
    )

    assert load_manifest(json_path).spec.workers.count == 2
    assert load_manifest(toml_path).name == "staging"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_bad_manifest_files(tmp_path, content):
    path = tmp_path / "bad.json"
    path.write_text(content)

    with pytest.raises(InvalidConfigError):
        load_manifest(path)


def test_examples_are_valid():
    root = Path(__file__).parent.parent / "examples"

    assert load_manifest(root / "dev.json").name == "dev"
    assert load_manifest(root / "staging.toml").metadata.namespace == "team-a"
    settings = load_settings(project_dir=root, global_path=root / "missing.toml")
    assert settings.controller.workers == 4


def test_docker_is_a_provider_config():
    from minik8s.providers import ProviderConfig

    config = Docker()
    assert isinstance(config, ProviderConfig)
    assert config.type == "docker"
