from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING

from minik8s.constants import (
    DEFAULT_CIDR,
    DEFAULT_DNS_NAMESERVER,
    DEFAULT_NODE_IMAGE,
    SCALE_DOWN_STOP_TIMEOUT,
    STOP_TIMEOUT,
)

if TYPE_CHECKING:
    from minik8s.providers.docker.provider import DockerClusterProvider


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Bridge network settings shared by every cluster this provider creates.

    Attributes:
        cidr: Subnet of the cluster network; the gateway is its first address.
        subnet_mask: Prefix length nodes are expected to use (16..28). Only
            checked by :meth:`validate_defaults`; the network is created from ``cidr``.
        exposed_ports: Ports the node containers expose.
        enable_ipv6: Create the network with IPv6 enabled.
        dns_nameserver: Nameserver recorded for nodes. Not passed to the
            runtime; node containers keep the bridge network's resolver.
    """

    cidr: str = DEFAULT_CIDR
    subnet_mask: int = 24
    exposed_ports: tuple[int, ...] = (6443,)
    enable_ipv6: bool = False
    dns_nameserver: str = DEFAULT_DNS_NAMESERVER

    def validate_defaults(self) -> tuple[bool, NetworkConfig]:
        """Check required fields and fill the DNS default.

        Returns whether the config is usable, and the config with defaults applied.
        """
        if not self.cidr:
            return False, self
        if not 16 <= self.subnet_mask <= 28:
            return False, self
        if not self.dns_nameserver:
            return True, replace(self, dns_nameserver=DEFAULT_DNS_NAMESERVER)
        return True, self


@dataclass(frozen=True, slots=True)
class ResourceLimit:
    default: str = ""
    min: str = ""
    max: str = ""


@dataclass(frozen=True, slots=True)
class ResourceLimits:
    """Operator-declared bounds for node sizes.

    Carried in configuration only: node containers are sized from each
    cluster's ``MachineConfig`` and these values are not enforced.
    """

    cpu: ResourceLimit = field(default_factory=ResourceLimit)
    memory: ResourceLimit = field(default_factory=ResourceLimit)
    storage: ResourceLimit = field(default_factory=ResourceLimit)


@dataclass(frozen=True, slots=True)
class Docker:
    """Docker provider configuration.

    Runs every cluster node as a privileged local container from the
    ``<image>:<kubernetesVersion>`` node image, attached to a per-cluster
    bridge network.

    Example:
        >>> provider = await Docker(network=NetworkConfig(cidr="172.20.0.0/16")).create_provider()
        >>> await provider.create_cluster(cluster)
    """

    image: str = DEFAULT_NODE_IMAGE
    network: NetworkConfig = field(default_factory=NetworkConfig)
    resource_limits: ResourceLimits = field(default_factory=ResourceLimits)
    stop_timeout: int = STOP_TIMEOUT
    scale_down_stop_timeout: int = SCALE_DOWN_STOP_TIMEOUT
    privileged: bool = True
    pull_attempts: int = 3
    pull_backoff: float = 1.0

    async def create_provider(self) -> DockerClusterProvider:
        from minik8s.providers.docker.provider import DockerClusterProvider
        return await DockerClusterProvider.create(self)

    @property
    def type(self) -> str: return "docker"

    def merge_with(self, other: Docker) -> Docker:
        """Overlay the non-empty network and resource-limit fields of ``other``.

        A helper for callers layering provider configs; settings files are
        merged before they are turned into a ``Docker`` value.
        """
        net, theirs = self.network, other.network
        network = replace(
            net,
            cidr=theirs.cidr or net.cidr,
            subnet_mask=theirs.subnet_mask or net.subnet_mask,
            exposed_ports=theirs.exposed_ports or net.exposed_ports,
            dns_nameserver=theirs.dns_nameserver or net.dns_nameserver,
        )
        limits, their_limits = self.resource_limits, other.resource_limits
        resource_limits = ResourceLimits(
            cpu=their_limits.cpu if their_limits.cpu.default else limits.cpu,
            memory=their_limits.memory if their_limits.memory.default else limits.memory,
            storage=their_limits.storage if their_limits.storage.default else limits.storage,
        )
        return replace(self, network=network, resource_limits=resource_limits)
