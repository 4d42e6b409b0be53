"""Declarative cluster documents.

A manifest is the persisted shape of a cluster object, using the camelCase
field names of the resource API::

    {
        "apiVersion": "cluster.mini-k8s.io/v1alpha1",
        "kind": "Cluster",
        "metadata": {"name": "dev"},
        "spec": {
            "kubernetesVersion": "v1.29.2",
            "controlPlane": {"count": 1, "machineConfig": {"memory": "2Gi", "cpuCount": 2}},
            "workers": {"count": 2, "machineConfig": {"memory": "4Gi", "cpuCount": 2}},
        },
    }
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from minik8s.api.model import (
    Cluster,
    ClusterSpec,
    ClusterStatus,
    Condition,
    ConditionStatus,
    ControlPlaneConfig,
    MachineConfig,
    ObjectMeta,
    Phase,
    WorkerConfig,
)
from minik8s.constants import DEFAULT_NAMESPACE
from minik8s.core.exceptions import InvalidConfigError

API_VERSION = "cluster.mini-k8s.io/v1alpha1"


class _Document(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")


class MachineConfigDoc(_Document):
    memory: str = ""
    cpu_count: int = Field(default=1, ge=1, alias="cpuCount")

    def to_model(self) -> MachineConfig:
        return MachineConfig(memory=self.memory, cpu_count=self.cpu_count)


class ControlPlaneDoc(_Document):
    count: int = Field(default=1, ge=1)
    machine_config: MachineConfigDoc = Field(default_factory=MachineConfigDoc, alias="machineConfig")


class WorkersDoc(_Document):
    count: int = Field(default=0, ge=0)
    machine_config: MachineConfigDoc = Field(default_factory=MachineConfigDoc, alias="machineConfig")


class ClusterSpecDoc(_Document):
    kubernetes_version: str = Field(min_length=1, alias="kubernetesVersion")
    control_plane: ControlPlaneDoc = Field(default_factory=ControlPlaneDoc, alias="controlPlane")
    workers: WorkersDoc = Field(default_factory=WorkersDoc)


class ConditionDoc(_Document):
    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="lastTransitionTime",
    )


class ClusterStatusDoc(_Document):
    phase: Phase | None = None
    message: str = ""
    control_plane_ready: bool = Field(default=False, alias="controlPlaneReady")
    workers_ready: int = Field(default=0, alias="workersReady")
    conditions: list[ConditionDoc] = Field(default_factory=list)


class MetadataDoc(_Document):
    name: str = Field(min_length=1)
    namespace: str = DEFAULT_NAMESPACE
    finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: datetime | None = Field(default=None, alias="deletionTimestamp")
    resource_version: int = Field(default=0, alias="resourceVersion")


class ClusterManifest(_Document):
    api_version: str = Field(default=API_VERSION, alias="apiVersion")
    kind: Literal["Cluster"] = "Cluster"
    metadata: MetadataDoc
    spec: ClusterSpecDoc
    status: ClusterStatusDoc = Field(default_factory=ClusterStatusDoc)

    def to_cluster(self) -> Cluster:
        spec = self.spec
        return Cluster(
            metadata=ObjectMeta(
                name=self.metadata.name,
                namespace=self.metadata.namespace,
                finalizers=tuple(self.metadata.finalizers),
                deletion_timestamp=self.metadata.deletion_timestamp,
                resource_version=self.metadata.resource_version,
            ),
            spec=ClusterSpec(
                kubernetes_version=spec.kubernetes_version,
                control_plane=ControlPlaneConfig(
                    count=spec.control_plane.count,
                    machine=spec.control_plane.machine_config.to_model(),
                ),
                workers=WorkerConfig(
                    count=spec.workers.count,
                    machine=spec.workers.machine_config.to_model(),
                ),
            ),
            status=ClusterStatus(
                phase=self.status.phase,
                message=self.status.message,
                control_plane_ready=self.status.control_plane_ready,
                workers_ready=self.status.workers_ready,
                conditions=tuple(
                    Condition(
                        type=c.type,
                        status=c.status,
                        reason=c.reason,
                        message=c.message,
                        last_transition_time=c.last_transition_time,
                    )
                    for c in self.status.conditions
                ),
            ),
        )

    @classmethod
    def from_cluster(cls, cluster: Cluster) -> Self:
        meta, spec, status = cluster.metadata, cluster.spec, cluster.status
        return cls(
            metadata=MetadataDoc(
                name=meta.name,
                namespace=meta.namespace,
                finalizers=list(meta.finalizers),
                deletion_timestamp=meta.deletion_timestamp,
                resource_version=meta.resource_version,
            ),
            spec=ClusterSpecDoc(
                kubernetes_version=spec.kubernetes_version,
                control_plane=ControlPlaneDoc(
                    count=spec.control_plane.count,
                    machine_config=_machine_doc(spec.control_plane.machine),
                ),
                workers=WorkersDoc(
                    count=spec.workers.count,
                    machine_config=_machine_doc(spec.workers.machine),
                ),
            ),
            status=ClusterStatusDoc(
                phase=status.phase,
                message=status.message,
                control_plane_ready=status.control_plane_ready,
                workers_ready=status.workers_ready,
                conditions=[
                    ConditionDoc(
                        type=c.type,
                        status=c.status,
                        reason=c.reason,
                        message=c.message,
                        last_transition_time=c.last_transition_time,
                    )
                    for c in status.conditions
                ],
            ),
        )


def _machine_doc(machine: MachineConfig) -> MachineConfigDoc:
    return MachineConfigDoc(memory=machine.memory, cpu_count=machine.cpu_count)


def parse_manifest(data: dict[str, Any]) -> Cluster:
    """Build a cluster from a manifest document.

    Raises:
        InvalidConfigError: If the document does not match the schema.
    """
    try:
        return ClusterManifest.model_validate(data).to_cluster()
    except ValidationError as e:
        raise InvalidConfigError(f"invalid cluster manifest: {e}") from e


def dump_manifest(cluster: Cluster) -> dict[str, Any]:
    return ClusterManifest.from_cluster(cluster).model_dump(by_alias=True, mode="json")
