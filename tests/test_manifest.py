from __future__ import annotations

import pytest

from minik8s.api.manifest import API_VERSION, dump_manifest, parse_manifest
from minik8s.api.model import Phase
from minik8s.core.exceptions import InvalidConfigError

DOC = {
    "apiVersion": API_VERSION,
    "kind": "Cluster",
    "metadata": {"name": "dev"},
    "spec": {
        "kubernetesVersion": "v1.29.2",
        "controlPlane": {"count": 1, "machineConfig": {"memory": "2Gi", "cpuCount": 2}},
        "workers": {"count": 2, "machineConfig": {"memory": "1Gi", "cpuCount": 1}},
    },
}


def test_parse_camel_case_document():
    cluster = parse_manifest(DOC)

    assert cluster.name == "dev"
    assert cluster.metadata.namespace == "default"
    assert cluster.spec.kubernetes_version == "v1.29.2"
    assert cluster.spec.control_plane.machine.memory == "2Gi"
    assert cluster.spec.control_plane.machine.cpu_count == 2
    assert cluster.spec.workers.count == 2
    assert cluster.status.phase is None


def test_defaults_for_omitted_sections():
    cluster = parse_manifest({"metadata": {"name": "x"}, "spec": {"kubernetesVersion": "v1.30.0"}})

    assert cluster.spec.control_plane.count == 1
    assert cluster.spec.workers.count == 0
    assert cluster.spec.workers.machine.cpu_count == 1


@pytest.mark.parametrize(
    "patch",
    [
        {"spec": {"kubernetesVersion": ""}},
        {"spec": {"kubernetesVersion": "v1", "controlPlane": {"count": 0}}},
        {"spec": {"kubernetesVersion": "v1", "workers": {"count": -1}}},
        {"spec": {"kubernetesVersion": "v1", "workers": {"machineConfig": {"cpuCount": 0}}}},
        {"spec": {"kubernetesVersion": "v1", "replicas": 3}},
        {"kind": "Pod"},
    ],
)
def test_invalid_documents(patch):
    with pytest.raises(InvalidConfigError):
        parse_manifest({**DOC, **patch})


def test_dump_uses_api_field_names():
    cluster = parse_manifest(DOC).with_status(phase=Phase.RUNNING, workers_ready=2)

    dumped = dump_manifest(cluster)

    assert dumped["apiVersion"] == API_VERSION
    assert dumped["spec"]["controlPlane"]["machineConfig"] == {"memory": "2Gi", "cpuCount": 2}
    assert dumped["status"]["phase"] == "Running"
    assert dumped["status"]["workersReady"] == 2
    assert parse_manifest(dumped) == cluster
