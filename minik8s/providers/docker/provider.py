from __future__ import annotations

import asyncio
import json
from typing import Any

import aiodocker
import aiohttp
from aiodocker.containers import DockerContainer
from aiodocker.exceptions import DockerError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from minik8s.api.model import Cluster, MachineConfig, validate_cluster
from minik8s.constants import ContainerState, Role
from minik8s.core.exceptions import (
    ClusterExistsError,
    ClusterNotFoundError,
    MiniK8sError,
    ProviderNotReadyError,
    ProvisioningError,
    RuntimeOperationError,
)
from minik8s.naming import (
    cluster_filter,
    cluster_labels,
    network_gateway,
    network_name,
    node_labels,
    node_name,
)
from minik8s.observability.logger import logger
from minik8s.providers.docker.config import Docker
from minik8s.providers.provider import ClusterProvider, ObservedStatus
from minik8s.providers.status import aggregate_status, observe_containers
from minik8s.resources import container_resources

log = logger.bind(provider="docker")


class DockerClusterProvider(ClusterProvider):
    """Provisioning engine backed by the Docker Engine API.

    Holds no per-cluster state: every operation rediscovers the cluster's
    network and containers through deterministic names and labels.
    """

    def __init__(self, config: Docker, client: aiodocker.Docker) -> None:
        self._config = config
        self._client: aiodocker.Docker | None = client

    @classmethod
    async def create(
        cls, config: Docker, client: aiodocker.Docker | None = None,
    ) -> DockerClusterProvider:
        try:
            client = client or aiodocker.Docker()
            await client.version()
        except (DockerError, OSError, ValueError) as e:
            if client is not None:
                await client.close()
            raise ProviderNotReadyError(f"docker daemon not reachable: {e}") from e
        log.debug("Connected to docker daemon")
        return cls(config, client)

    @property
    def _docker(self) -> aiodocker.Docker:
        if self._client is None:
            raise ProviderNotReadyError("docker provider is closed")
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

    # =========================================================================
    # Cluster operations
    # =========================================================================

    async def create_cluster(self, cluster: Cluster) -> None:
        validate_cluster(cluster)
        name = cluster.name
        log.info("Creating cluster {name}", name=name)

        if await self._list_containers(cluster_filter(name)):
            raise ClusterExistsError(name)

        network_id = await self._ensure_network(name)
        log.info("Cluster {name} network ready: {net}", name=name, net=network_id[:12])

        plan = [
            (Role.CONTROL_PLANE, i, cluster.spec.control_plane.machine)
            for i in range(cluster.spec.control_plane.count)
        ] + [
            (Role.WORKER, i, cluster.spec.workers.machine)
            for i in range(cluster.spec.workers.count)
        ]

        for step, (role, index, machine) in enumerate(plan, start=1):
            node = node_name(name, role, index)
            log.info("Creating node {node} ({step}/{total})", node=node, step=step, total=len(plan))
            try:
                await self._create_node(cluster, role, index, network_id, machine)
            except asyncio.CancelledError:
                log.warning("Creation of cluster {name} cancelled at {node}, rolling back", name=name, node=node)
                await asyncio.shield(self._rollback(cluster))
                raise
            except Exception as e:
                log.error("Node {node} failed, rolling back cluster {name}: {err}", node=node, name=name, err=e)
                raise ProvisioningError(node, e, await self._rollback(cluster)) from e

        log.info("Cluster {name} created with {n} nodes", name=name, n=len(plan))

    async def delete_cluster(self, cluster: Cluster) -> None:
        name = cluster.name
        log.info("Deleting cluster {name}", name=name)

        containers = await self._list_containers(cluster_filter(name))
        log.debug("Found {n} containers to delete", n=len(containers))
        for container in containers:
            await self._stop_and_remove(container, self._config.stop_timeout)

        with _RuntimeCall("list networks"):
            networks = await self._docker.networks.list(filters=cluster_filter(name))
        log.debug("Found {n} networks to delete", n=len(networks))
        for net in networks:
            with _RuntimeCall(f"remove network {net['Name']}"):
                network = await self._docker.networks.get(net["Id"])
                await network.delete()
            log.info("Network {net} removed", net=net["Name"])

        log.info("Cluster {name} deleted", name=name)

    async def get_cluster_status(self, cluster: Cluster) -> ObservedStatus:
        containers = await self._list_containers(cluster_filter(cluster.name))
        status = aggregate_status(
            observe_containers(containers), cluster.spec,
        )
        log.debug(
            "Cluster {name} observed: phase={phase} control_plane_ready={cp} workers_ready={w}",
            name=cluster.name, phase=status.phase,
            cp=status.control_plane_ready, w=status.workers_ready,
        )
        return status

    async def update_cluster(self, cluster: Cluster) -> None:
        validate_cluster(cluster)
        name = cluster.name

        if not await self._list_containers(cluster_filter(name)):
            raise ClusterNotFoundError(name)

        status = await self.get_cluster_status(cluster)
        current, desired = status.workers_ready, cluster.spec.workers.count
        if desired > current:
            log.info("Scaling cluster {name} workers {old} → {new}", name=name, old=current, new=desired)
            network_id = await self._ensure_network(name)
            # running workers are skipped, stopped ones below `current` are started again
            for index in range(desired):
                await self._create_node(
                    cluster, Role.WORKER, index, network_id, cluster.spec.workers.machine,
                )
        elif desired < current:
            log.info("Scaling cluster {name} workers {old} → {new}", name=name, old=current, new=desired)
            for index in range(current - 1, desired - 1, -1):
                node = node_name(name, Role.WORKER, index)
                container = await self._find_container(node)
                if container is None:
                    log.debug("Worker {node} already gone", node=node)
                    continue
                await self._stop_and_remove(container, self._config.scale_down_stop_timeout)
        else:
            log.debug("Cluster {name} already has {n} workers", name=name, n=current)

        await self._remove_surplus_workers(cluster)

    # =========================================================================
    # Runtime helpers
    # =========================================================================

    async def _rollback(self, cluster: Cluster) -> MiniK8sError | None:
        try:
            await self.delete_cluster(cluster)
        except MiniK8sError as e:
            log.error("Rollback of cluster {name} failed: {err}", name=cluster.name, err=e)
            return e
        return None

    async def _remove_surplus_workers(self, cluster: Cluster) -> None:
        """Remove worker containers, running or not, at indices the spec no longer covers."""
        desired = cluster.spec.workers.count
        containers = await self._list_containers(cluster_filter(cluster.name))
        surplus = sorted(
            (
                (node.index, container)
                for container, node in zip(containers, observe_containers(containers))
                if node.role is Role.WORKER and node.index is not None and node.index >= desired
            ),
            key=lambda pair: pair[0],
            reverse=True,
        )
        for index, container in surplus:
            log.info("Removing surplus worker {index} of cluster {name}", index=index, name=cluster.name)
            await self._stop_and_remove(container, self._config.scale_down_stop_timeout)

    async def _list_containers(self, filters: dict[str, list[str]]) -> list[DockerContainer]:
        with _RuntimeCall("list containers"):
            return await self._docker.containers.list(all=True, filters=json.dumps(filters))

    async def _find_container(self, name: str) -> DockerContainer | None:
        containers = await self._list_containers({"name": [name]})
        return next(
            (c for c in containers if f"/{name}" in (c["Names"] or [])),
            None,
        )

    async def _ensure_network(self, cluster: str) -> str:
        name = network_name(cluster)
        with _RuntimeCall("list networks"):
            networks = await self._docker.networks.list(filters={"name": [name]})
        existing = next((n for n in networks if n["Name"] == name), None)
        if existing is not None:
            log.debug("Reusing network {net}", net=name)
            return existing["Id"]

        net = self._config.network
        config = {
            "Name": name,
            "Driver": "bridge",
            "EnableIPv6": net.enable_ipv6,
            "Internal": False,
            "Attachable": False,
            "Ingress": False,
            "Labels": cluster_labels(cluster),
            "IPAM": {
                "Driver": "default",
                "Config": [{"Subnet": net.cidr, "Gateway": network_gateway(net.cidr)}],
            },
        }
        with _RuntimeCall("create network"):
            network = await self._docker.networks.create(config)
        log.info("Network {net} created", net=name)
        return network.id

    async def _pull_image(self, ref: str) -> None:
        log.info("Pulling image {ref}", ref=ref)
        with _RuntimeCall(f"pull node image {ref}"):
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(self._config.pull_attempts, 1)),
                wait=wait_exponential(multiplier=self._config.pull_backoff, max=10),
                retry=retry_if_exception_type(DockerError),
                reraise=True,
            ):
                with attempt:
                    await self._docker.images.pull(ref)

    async def _create_node(
        self,
        cluster: Cluster,
        role: Role,
        index: int,
        network_id: str,
        machine: MachineConfig,
    ) -> None:
        name = node_name(cluster.name, role, index)

        existing = await self._find_container(name)
        if existing is not None:
            if existing["State"] == ContainerState.RUNNING:
                log.debug("Node {node} already running", node=name)
                return
            with _RuntimeCall(f"start container {name}"):
                await existing.start()
            log.info("Node {node} restarted", node=name)
            return

        image = f"{self._config.image}:{cluster.spec.kubernetes_version}"
        await self._pull_image(image)

        with _RuntimeCall(f"create container {name}"):
            container = await self._docker.containers.create(
                config=self._container_config(cluster, role, index, image, network_id, machine),
                name=name,
            )
        log.debug("Container {node} created: {id}", node=name, id=container.id[:12])

        with _RuntimeCall(f"start container {name}"):
            await container.start()
        log.info("Node {node} started", node=name)

    def _container_config(
        self,
        cluster: Cluster,
        role: Role,
        index: int,
        image: str,
        network_id: str,
        machine: MachineConfig,
    ) -> dict[str, Any]:
        name = node_name(cluster.name, role, index)
        return {
            "Image": image,
            "Hostname": name,
            "Labels": node_labels(cluster.name, role, index),
            "ExposedPorts": {f"{p}/tcp": {} for p in self._config.network.exposed_ports},
            "HostConfig": {
                "Privileged": self._config.privileged,
                **container_resources(machine),
            },
            "NetworkingConfig": {
                "EndpointsConfig": {
                    network_name(cluster.name): {"NetworkID": network_id},
                },
            },
        }

    async def _stop_and_remove(self, container: DockerContainer, timeout: int) -> None:
        short_id = container.id[:12]
        with _RuntimeCall(f"stop container {short_id}"):
            await container.stop(t=timeout)
        with _RuntimeCall(f"remove container {short_id}"):
            await container.delete(force=True, v=True)
        log.info("Container {id} removed", id=short_id)


class _RuntimeCall:
    """Re-raise runtime API errors as RuntimeOperationError with context."""

    __slots__ = ("_operation",)

    def __init__(self, operation: str) -> None:
        self._operation = operation

    def __enter__(self) -> None:
        pass

    def __exit__(self, exc_type: type | None, exc: BaseException | None, tb: object) -> bool:
        if isinstance(exc, (DockerError, aiohttp.ClientError, TimeoutError)):
            raise RuntimeOperationError(self._operation, exc) from exc
        return False
