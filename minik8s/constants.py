"""Centralized constants for minik8s.

Label keys, the finalizer token and default tunables shared between the
provisioning engine and the reconciler live here.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

# =============================================================================
# Resource labels
# =============================================================================


class Label(StrEnum):
    """Label keys set on every runtime resource owned by a cluster."""

    CLUSTER = "cluster"
    ROLE = "role"
    INDEX = "index"


class Role(StrEnum):
    """Node roles inside a cluster."""

    CONTROL_PLANE = "control-plane"
    WORKER = "worker"


# =============================================================================
# Container states
# =============================================================================


class ContainerState(StrEnum):
    """Container state names reported by the runtime."""

    CREATED = "created"
    RUNNING = "running"
    PAUSED = "paused"
    RESTARTING = "restarting"
    EXITED = "exited"
    DEAD = "dead"


# =============================================================================
# Cluster object
# =============================================================================

FINALIZER: Final = "cluster.mini-k8s.io/finalizer"
DEFAULT_NAMESPACE: Final = "default"

# =============================================================================
# Provider defaults
# =============================================================================

DEFAULT_NODE_IMAGE: Final = "kindest/node"
DEFAULT_CIDR: Final = "10.10.0.0/16"
DEFAULT_DNS_NAMESERVER: Final = "8.8.8.8"
STOP_TIMEOUT: Final = 30
SCALE_DOWN_STOP_TIMEOUT: Final = 60
CPU_PERIOD: Final = 100_000

# =============================================================================
# Controller defaults (seconds)
# =============================================================================

RUNNING_REQUEUE_INTERVAL: Final = 30.0
FAILED_REQUEUE_INTERVAL: Final = 300.0
