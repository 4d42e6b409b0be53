"""Cluster object model.

These are the immutable values that flow between the store, the reconciler
and the provisioning engine. Changes are expressed with ``dataclasses.replace``
or the ``with_*`` helpers, never by mutation.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum

from minik8s.constants import DEFAULT_NAMESPACE
from minik8s.core.exceptions import InvalidConfigError, InvalidQuantityError
from minik8s.resources import parse_memory

_NAME = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_.-]*$")


class Phase(StrEnum):
    """Coarse lifecycle phase of a cluster."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    RUNNING = "Running"
    UPDATING = "Updating"
    FAILED = "Failed"
    DELETING = "Deleting"


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


@dataclass(frozen=True, slots=True)
class MachineConfig:
    """Hardware size of one node.

    Args:
        memory: Binary quantity such as ``"2Gi"``. Empty means no limit.
        cpu_count: Whole CPUs allotted to the node.
    """

    memory: str = ""
    cpu_count: int = 1


@dataclass(frozen=True, slots=True)
class ControlPlaneConfig:
    count: int = 1
    machine: MachineConfig = field(default_factory=MachineConfig)


@dataclass(frozen=True, slots=True)
class WorkerConfig:
    count: int = 0
    machine: MachineConfig = field(default_factory=MachineConfig)


@dataclass(frozen=True, slots=True)
class ClusterSpec:
    """Desired state of a cluster, supplied by the caller."""

    kubernetes_version: str
    control_plane: ControlPlaneConfig = field(default_factory=ControlPlaneConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)


@dataclass(frozen=True, slots=True)
class Condition:
    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class ClusterStatus:
    """Observed state of a cluster, owned by the reconciler.

    ``phase`` is ``None`` until the reconciler first observes the cluster.
    """

    phase: Phase | None = None
    message: str = ""
    control_plane_ready: bool = False
    workers_ready: int = 0
    conditions: tuple[Condition, ...] = ()


@dataclass(frozen=True, slots=True, order=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class ObjectMeta:
    name: str
    namespace: str = DEFAULT_NAMESPACE
    finalizers: tuple[str, ...] = ()
    deletion_timestamp: datetime | None = None
    resource_version: int = 0

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.namespace, self.name)


@dataclass(frozen=True, slots=True)
class Cluster:
    metadata: ObjectMeta
    spec: ClusterSpec
    status: ClusterStatus = field(default_factory=ClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def key(self) -> ObjectKey:
        return self.metadata.key

    @property
    def deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None

    def has_finalizer(self, token: str) -> bool:
        return token in self.metadata.finalizers

    def with_finalizer(self, token: str) -> Cluster:
        if self.has_finalizer(token):
            return self
        finalizers = (*self.metadata.finalizers, token)
        return replace(self, metadata=replace(self.metadata, finalizers=finalizers))

    def without_finalizer(self, token: str) -> Cluster:
        finalizers = tuple(f for f in self.metadata.finalizers if f != token)
        return replace(self, metadata=replace(self.metadata, finalizers=finalizers))

    def with_status(self, **changes: object) -> Cluster:
        return replace(self, status=replace(self.status, **changes))


def validate_cluster(cluster: Cluster) -> None:
    """Reject clusters the provisioning engine cannot act on.

    Raises:
        InvalidConfigError: On a missing or malformed name or an invalid spec.
    """
    if not cluster.name:
        raise InvalidConfigError("cluster name is required")
    if not _NAME.match(cluster.name):
        raise InvalidConfigError(
            f"cluster name {cluster.name!r} must start with an alphanumeric character "
            "and contain only alphanumerics, '_', '.' or '-'"
        )
    validate_cluster_spec(cluster.spec)


def validate_cluster_spec(spec: ClusterSpec | None) -> None:
    if spec is None:
        raise InvalidConfigError("cluster spec is required")
    if not spec.kubernetes_version:
        raise InvalidConfigError("kubernetes version is required")
    if spec.control_plane.count < 1:
        raise InvalidConfigError("at least one control plane node is required")
    if spec.workers.count < 0:
        raise InvalidConfigError("worker count cannot be negative")
    for role, machine in (("control plane", spec.control_plane.machine), ("worker", spec.workers.machine)):
        if machine.cpu_count < 1:
            raise InvalidConfigError(f"{role} cpu count must be at least 1")
        if machine.memory and parse_memory(machine.memory) <= 0:
            raise InvalidQuantityError(machine.memory)


def find_condition(conditions: tuple[Condition, ...], type_: str) -> Condition | None:
    return next((c for c in conditions if c.type == type_), None)


def set_condition(conditions: tuple[Condition, ...], condition: Condition) -> tuple[Condition, ...]:
    """Insert or replace the condition of the same type.

    The transition time is kept from the existing condition unless the
    status value changes.
    """
    existing = find_condition(conditions, condition.type)
    if existing is None:
        return (*conditions, condition)
    if existing.status == condition.status:
        condition = replace(condition, last_transition_time=existing.last_transition_time)
    return tuple(condition if c.type == condition.type else c for c in conditions)
