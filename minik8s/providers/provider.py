from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

from minik8s.api.model import Cluster

type ObservedPhase = Literal["NotFound", "Starting", "Running", "Pending"]


@dataclass(frozen=True, slots=True)
class ObservedStatus:
    """Live state of a cluster's nodes as seen by a provider.

    Attributes:
        phase: Classification of the node set, see ``aggregate_status``.
        control_plane_ready: Running control-plane nodes equal the desired count.
        workers_ready: Number of running worker nodes.
    """

    phase: ObservedPhase
    control_plane_ready: bool
    workers_ready: int


@runtime_checkable
class ClusterProvider(Protocol):
    """Capability interface the reconciler drives.

    Implementations hold only immutable config and a runtime client.
    Every operation must be safe to invoke against partially-applied
    prior state, since the reconciler retries them.
    """

    async def create_cluster(self, cluster: Cluster) -> None:
        """Provision network and nodes for a new cluster.

        Raises
        ------
        ClusterExistsError
            Nodes labeled with the cluster name already exist.
        InvalidConfigError
            The cluster spec is invalid.
        ProvisioningError
            A node failed to come up; everything created was rolled back.
        """
        ...

    async def delete_cluster(self, cluster: Cluster) -> None:
        """Tear down every runtime resource labeled with the cluster name.

        Deleting a cluster that has no resources succeeds.
        """
        ...

    async def get_cluster_status(self, cluster: Cluster) -> ObservedStatus:
        """Observe the cluster's nodes. Never mutates runtime state."""
        ...

    async def update_cluster(self, cluster: Cluster) -> None:
        """Converge the worker count to the spec.

        Raises
        ------
        ClusterNotFoundError
            The cluster has no runtime resources.
        """
        ...

    async def close(self) -> None:
        """Release the runtime client."""
        ...


@runtime_checkable
class ProviderConfig[P](Protocol):
    @property
    def type(self) -> str: ...

    async def create_provider(self) -> P: ...
