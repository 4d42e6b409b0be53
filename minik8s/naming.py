"""Deterministic names and addresses for cluster runtime resources.

Every runtime object a cluster owns is identified purely by its name and
labels, so these functions are the only source of truth for them.
"""

from __future__ import annotations

import ipaddress
import re

from minik8s.constants import Label, Role
from minik8s.core.exceptions import InvalidConfigError

_NODE_NAME = re.compile(r"^cluster-(?P<cluster>.+)-(?P<role>control-plane|worker)-(?P<index>\d+)$")


def network_name(cluster: str) -> str:
    return f"cluster-{cluster}-net"


def node_name(cluster: str, role: Role, index: int) -> str:
    return f"cluster-{cluster}-{role}-{index}"


def parse_node_name(name: str) -> tuple[str, Role, int] | None:
    """Invert node_name. Returns None for names not produced by it."""
    match = _NODE_NAME.match(name.lstrip("/"))
    if match is None:
        return None
    return match["cluster"], Role(match["role"]), int(match["index"])


def cluster_labels(cluster: str) -> dict[str, str]:
    return {Label.CLUSTER: cluster}


def node_labels(cluster: str, role: Role, index: int) -> dict[str, str]:
    return {
        Label.CLUSTER: cluster,
        Label.ROLE: str(role),
        Label.INDEX: str(index),
    }


def cluster_filter(cluster: str) -> dict[str, list[str]]:
    """Runtime list filter selecting every resource labeled with the cluster."""
    return {"label": [f"{Label.CLUSTER}={cluster}"]}


def network_gateway(cidr: str) -> str:
    """First usable address of the subnet, used as the bridge gateway.

    >>> network_gateway("10.10.0.0/16")
    '10.10.0.1'
    """
    try:
        network = ipaddress.ip_network(cidr, strict=False)
    except ValueError as e:
        raise InvalidConfigError(f"invalid network CIDR {cidr!r}: {e}") from e
    return str(network.network_address + 1)
