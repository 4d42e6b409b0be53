"""Classification of a cluster's live node containers into an overall phase."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from minik8s.api.model import ClusterSpec
from minik8s.constants import ContainerState, Label, Role
from minik8s.naming import parse_node_name
from minik8s.providers.provider import ObservedStatus


@dataclass(frozen=True, slots=True)
class NodeObservation:
    """One node container as listed by the runtime."""

    id: str
    name: str
    role: Role | None
    index: int | None
    state: str

    @property
    def running(self) -> bool:
        return self.state == ContainerState.RUNNING


def observe_containers(containers: Iterable[Any]) -> list[NodeObservation]:
    """Derive nodes from container list entries (``Id``, ``Names``, ``Labels``, ``State``)."""
    nodes: list[NodeObservation] = []
    for c in containers:
        labels = c["Labels"] or {}
        names = c["Names"] or []
        name = names[0].lstrip("/") if names else ""
        parsed = parse_node_name(name)
        role = labels.get(Label.ROLE)
        index = labels.get(Label.INDEX)
        nodes.append(NodeObservation(
            id=c["Id"],
            name=name,
            role=Role(role) if role in Role else None,
            index=int(index) if index is not None else (parsed[2] if parsed else None),
            state=c["State"],
        ))
    return nodes


def aggregate_status(nodes: Iterable[NodeObservation], spec: ClusterSpec) -> ObservedStatus:
    """Classify the node set.

    Precedence: no nodes → ``NotFound``; any node not running → ``Starting``;
    running counts match the spec → ``Running``; otherwise ``Pending``.
    """
    nodes = list(nodes)
    control_plane = sum(1 for n in nodes if n.running and n.role is Role.CONTROL_PLANE)
    workers = sum(1 for n in nodes if n.running and n.role is Role.WORKER)
    all_running = all(n.running for n in nodes)

    if not nodes:
        phase = "NotFound"
    elif not all_running:
        phase = "Starting"
    elif control_plane == spec.control_plane.count and workers == spec.workers.count:
        phase = "Running"
    else:
        phase = "Pending"

    return ObservedStatus(
        phase=phase,
        control_plane_ready=control_plane == spec.control_plane.count,
        workers_ready=workers,
    )
