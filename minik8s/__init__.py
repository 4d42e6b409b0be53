"""minik8s: run Kubernetes clusters as local Docker containers.

A controller reconciles declarative ``Cluster`` objects into a per-cluster
bridge network plus one privileged container per node.

Example:
    from minik8s import Docker, InMemoryClusterStore, Manager, parse_manifest

    provider = await Docker().create_provider()
    store = InMemoryClusterStore()
    async with Manager(store, provider):
        await store.create(parse_manifest(document))
"""

from minik8s.api import (
    Cluster as Cluster,
    ClusterSpec as ClusterSpec,
    ClusterStatus as ClusterStatus,
    ControlPlaneConfig as ControlPlaneConfig,
    MachineConfig as MachineConfig,
    ObjectKey as ObjectKey,
    ObjectMeta as ObjectMeta,
    Phase as Phase,
    WorkerConfig as WorkerConfig,
    dump_manifest as dump_manifest,
    parse_manifest as parse_manifest,
)
from minik8s.config import Settings as Settings
from minik8s.config import load_manifest as load_manifest
from minik8s.config import load_settings as load_settings
from minik8s.controller.reconciler import ClusterReconciler as ClusterReconciler
from minik8s.controller.reconciler import ControllerSettings as ControllerSettings
from minik8s.controller.reconciler import Result as Result
from minik8s.core.exceptions import MiniK8sError as MiniK8sError
from minik8s.manager import Manager as Manager
from minik8s.observability import LogConfig as LogConfig
from minik8s.providers import ClusterProvider as ClusterProvider
from minik8s.providers import ObservedStatus as ObservedStatus
from minik8s.providers.docker import Docker as Docker
from minik8s.providers.docker import DockerClusterProvider as DockerClusterProvider
from minik8s.store import InMemoryClusterStore as InMemoryClusterStore

__version__ = "0.1.0"
