from __future__ import annotations

import asyncio

import pytest

from minik8s.core.exceptions import (
    ClusterExistsError,
    ClusterNotFoundError,
    InvalidConfigError,
    InvalidQuantityError,
    ProviderNotReadyError,
    ProvisioningError,
    RuntimeOperationError,
)
from minik8s.providers.docker import Docker, DockerClusterProvider, NetworkConfig
from tests.fakes import FakeDocker, make_cluster

CP0 = "cluster-demo-control-plane-0"
W0, W1, W2 = (f"cluster-demo-worker-{i}" for i in range(3))


# =============================================================================
# CreateCluster
# =============================================================================


@pytest.mark.asyncio
async def test_create_then_status_reports_running(provider, fake_docker):
    cluster = make_cluster(control_plane=1, workers=2)

    await provider.create_cluster(cluster)
    status = await provider.get_cluster_status(cluster)

    assert status.phase == "Running"
    assert status.control_plane_ready is True
    assert status.workers_ready == 2
    assert fake_docker.names() == [CP0, W0, W1]
    assert fake_docker.network_names() == ["cluster-demo-net"]


@pytest.mark.asyncio
async def test_create_twice_raises_exists_without_duplicates(provider, fake_docker):
    cluster = make_cluster(workers=1)
    await provider.create_cluster(cluster)

    with pytest.raises(ClusterExistsError):
        await provider.create_cluster(cluster)

    assert fake_docker.names() == [CP0, W0]
    assert len(fake_docker.of("network_create")) == 1
    assert len(fake_docker.of("create")) == 2


@pytest.mark.asyncio
async def test_create_orders_network_then_control_plane_then_workers(provider, fake_docker):
    await provider.create_cluster(make_cluster(control_plane=2, workers=2))

    ops = [c for c in fake_docker.calls if c[0] in ("network_create", "create")]
    assert ops == [
        ("network_create", "cluster-demo-net"),
        ("create", "cluster-demo-control-plane-0"),
        ("create", "cluster-demo-control-plane-1"),
        ("create", W0),
        ("create", W1),
    ]


@pytest.mark.asyncio
async def test_create_pulls_versioned_node_image(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=0, version="v1.30.1"))

    assert fake_docker.of("pull") == [("pull", "kindest/node:v1.30.1")]


@pytest.mark.asyncio
async def test_container_config_carries_labels_limits_and_network(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=1, memory="512Mi", cpu_count=2))

    network = next(iter(fake_docker.networks_by_id.values()))
    config = fake_docker.containers_by_name[W0].config
    assert config["Image"] == "kindest/node:v1.29.2"
    assert config["Hostname"] == W0
    assert config["Labels"] == {"cluster": "demo", "role": "worker", "index": "0"}
    assert config["HostConfig"]["Privileged"] is True
    assert config["HostConfig"]["Memory"] == 536870912
    assert config["HostConfig"]["CpuQuota"] == 200000
    assert config["HostConfig"]["CpuPeriod"] == 100000
    assert config["NetworkingConfig"] == {
        "EndpointsConfig": {"cluster-demo-net": {"NetworkID": network.id}},
    }


@pytest.mark.asyncio
async def test_network_uses_configured_cidr_and_cluster_label(fake_docker):
    config = Docker(network=NetworkConfig(cidr="172.30.0.0/16", enable_ipv6=True), pull_attempts=1)
    provider = DockerClusterProvider(config, fake_docker)  # type: ignore[arg-type]

    await provider.create_cluster(make_cluster(workers=0))

    network = next(iter(fake_docker.networks_by_id.values())).config
    assert network["Driver"] == "bridge"
    assert network["EnableIPv6"] is True
    assert network["Labels"] == {"cluster": "demo"}
    assert network["IPAM"]["Config"] == [{"Subnet": "172.30.0.0/16", "Gateway": "172.30.0.1"}]


@pytest.mark.asyncio
async def test_existing_network_is_reused(provider, fake_docker):
    await fake_docker.networks.create({"Name": "cluster-demo-net", "Labels": {"cluster": "demo"}})
    fake_docker.calls.clear()

    await provider.create_cluster(make_cluster(workers=0))

    assert fake_docker.of("network_create") == []
    assert fake_docker.network_names() == ["cluster-demo-net"]


@pytest.mark.asyncio
async def test_similarly_named_network_is_not_reused(provider, fake_docker):
    await fake_docker.networks.create({"Name": "cluster-demo-net-old", "Labels": {}})

    await provider.create_cluster(make_cluster(workers=0))

    assert fake_docker.network_names() == ["cluster-demo-net", "cluster-demo-net-old"]


@pytest.mark.asyncio
async def test_node_failure_rolls_back_everything(provider, fake_docker):
    fake_docker.fail_start.add(W1)

    with pytest.raises(ProvisioningError) as exc_info:
        await provider.create_cluster(make_cluster(workers=3))

    assert exc_info.value.node == W1
    assert exc_info.value.rollback_error is None
    assert isinstance(exc_info.value.__cause__, RuntimeOperationError)
    assert fake_docker.names() == []
    assert fake_docker.network_names() == []
    # creation stops at the failing node
    assert ("create", W2) not in fake_docker.calls


@pytest.mark.asyncio
async def test_control_plane_failure_rolls_back_network(provider, fake_docker):
    fake_docker.fail_create.add(CP0)

    with pytest.raises(ProvisioningError):
        await provider.create_cluster(make_cluster(workers=2))

    assert fake_docker.names() == []
    assert fake_docker.network_names() == []
    assert fake_docker.of("create") == [("create", CP0)]


@pytest.mark.asyncio
async def test_failed_rollback_is_attached_to_error(provider, fake_docker):
    fake_docker.fail_start.add(W0)
    fake_docker.fail_network_delete = True

    with pytest.raises(ProvisioningError) as exc_info:
        await provider.create_cluster(make_cluster(workers=1))

    assert isinstance(exc_info.value.rollback_error, RuntimeOperationError)
    assert fake_docker.network_names() == ["cluster-demo-net"]


@pytest.mark.asyncio
async def test_client_timeout_on_node_create_rolls_back(provider, fake_docker):
    fake_docker.raise_on_create[W1] = TimeoutError()

    with pytest.raises(ProvisioningError) as exc_info:
        await provider.create_cluster(make_cluster(workers=2))

    assert exc_info.value.node == W1
    assert isinstance(exc_info.value.__cause__, RuntimeOperationError)
    assert fake_docker.names() == []
    assert fake_docker.network_names() == []


@pytest.mark.asyncio
async def test_unexpected_node_error_still_rolls_back(provider, fake_docker):
    fake_docker.raise_on_create[W0] = RuntimeError("socket closed")

    with pytest.raises(ProvisioningError) as exc_info:
        await provider.create_cluster(make_cluster(workers=1))

    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert fake_docker.names() == []
    assert fake_docker.network_names() == []


@pytest.mark.asyncio
async def test_cancelled_create_rolls_back_before_raising(provider, fake_docker):
    fake_docker.hang_create.add(W1)

    with pytest.raises(TimeoutError):
        async with asyncio.timeout(0.05):
            await provider.create_cluster(make_cluster(workers=2))

    assert fake_docker.names() == []
    assert fake_docker.network_names() == []


@pytest.mark.asyncio
async def test_image_pull_is_retried(fake_docker):
    provider = DockerClusterProvider(Docker(pull_attempts=3, pull_backoff=0), fake_docker)  # type: ignore[arg-type]
    fake_docker.pull_failures = 2

    await provider.create_cluster(make_cluster(workers=0))

    assert len(fake_docker.of("pull")) == 3
    assert fake_docker.names() == [CP0]


@pytest.mark.asyncio
async def test_image_pull_gives_up_after_attempts(fake_docker):
    provider = DockerClusterProvider(Docker(pull_attempts=2, pull_backoff=0), fake_docker)  # type: ignore[arg-type]
    fake_docker.pull_failures = 5

    with pytest.raises(ProvisioningError) as exc_info:
        await provider.create_cluster(make_cluster(workers=0))

    assert "pull node image" in str(exc_info.value.__cause__)
    assert len(fake_docker.of("pull")) == 2
    assert fake_docker.network_names() == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "error"),
    [
        ({"version": ""}, InvalidConfigError),
        ({"control_plane": 0}, InvalidConfigError),
        ({"workers": -1}, InvalidConfigError),
        ({"cpu_count": 0}, InvalidConfigError),
        ({"memory": "2G"}, InvalidQuantityError),
    ],
)
async def test_invalid_spec_is_rejected_before_runtime_calls(provider, fake_docker, kwargs, error):
    with pytest.raises(error):
        await provider.create_cluster(make_cluster(**kwargs))

    assert fake_docker.calls == []


# =============================================================================
# DeleteCluster
# =============================================================================


@pytest.mark.asyncio
async def test_delete_removes_containers_and_network(provider, fake_docker):
    cluster = make_cluster(workers=2)
    await provider.create_cluster(cluster)

    await provider.delete_cluster(cluster)

    assert fake_docker.names() == []
    assert fake_docker.network_names() == []
    assert {c[2] for c in fake_docker.of("stop")} == {30}
    assert all(c[2:] == (True, True) for c in fake_docker.of("delete"))


@pytest.mark.asyncio
async def test_delete_includes_stopped_containers(provider, fake_docker):
    cluster = make_cluster(workers=1)
    await provider.create_cluster(cluster)
    await fake_docker.containers_by_name[W0].stop()

    await provider.delete_cluster(cluster)

    assert fake_docker.names() == []


@pytest.mark.asyncio
async def test_delete_missing_cluster_is_noop(provider, fake_docker):
    await provider.delete_cluster(make_cluster())

    assert fake_docker.of("stop") == []
    assert fake_docker.of("network_delete") == []


@pytest.mark.asyncio
async def test_delete_leaves_other_clusters_alone(provider, fake_docker):
    await provider.create_cluster(make_cluster("a", workers=1))
    await provider.create_cluster(make_cluster("b", workers=1))

    await provider.delete_cluster(make_cluster("a", workers=1))

    assert fake_docker.names() == ["cluster-b-control-plane-0", "cluster-b-worker-0"]
    assert fake_docker.network_names() == ["cluster-b-net"]


@pytest.mark.asyncio
async def test_delete_aborts_on_stop_failure(provider, fake_docker):
    cluster = make_cluster(workers=1)
    await provider.create_cluster(cluster)
    fake_docker.fail_stop.add(CP0)

    with pytest.raises(RuntimeOperationError):
        await provider.delete_cluster(cluster)

    assert CP0 in fake_docker.names()
    assert fake_docker.network_names() == ["cluster-demo-net"]


@pytest.mark.asyncio
async def test_delete_aborts_on_remove_failure(provider, fake_docker):
    cluster = make_cluster(workers=2)
    await provider.create_cluster(cluster)
    fake_docker.fail_delete.add(CP0)

    with pytest.raises(RuntimeOperationError, match="failed to remove container"):
        await provider.delete_cluster(cluster)

    # containers listed after the failing one are never touched
    assert fake_docker.names() == [CP0, W0, W1]
    assert fake_docker.of("stop") == [("stop", CP0, 30)]
    assert fake_docker.network_names() == ["cluster-demo-net"]


# =============================================================================
# GetClusterStatus
# =============================================================================


@pytest.mark.asyncio
async def test_status_not_found_without_containers(provider):
    status = await provider.get_cluster_status(make_cluster())

    assert status.phase == "NotFound"
    assert status.control_plane_ready is False
    assert status.workers_ready == 0


@pytest.mark.asyncio
async def test_status_starting_when_a_node_is_stopped(provider, fake_docker):
    cluster = make_cluster(workers=2)
    await provider.create_cluster(cluster)
    await fake_docker.containers_by_name[W1].stop()

    status = await provider.get_cluster_status(cluster)

    assert status.phase == "Starting"
    assert status.control_plane_ready is True
    assert status.workers_ready == 1


@pytest.mark.asyncio
async def test_status_pending_when_spec_wants_more_workers(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=1))

    status = await provider.get_cluster_status(make_cluster(workers=3))

    assert status.phase == "Pending"
    assert status.workers_ready == 1


@pytest.mark.asyncio
async def test_status_list_failure_is_wrapped(provider, fake_docker):
    fake_docker.fail_list = True

    with pytest.raises(RuntimeOperationError, match="failed to list containers"):
        await provider.get_cluster_status(make_cluster())


# =============================================================================
# UpdateCluster
# =============================================================================


@pytest.mark.asyncio
async def test_scale_down_removes_highest_index_first(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=3))

    await provider.update_cluster(make_cluster(workers=1))

    assert [c[1] for c in fake_docker.of("stop")] == [W2, W1]
    assert {c[2] for c in fake_docker.of("stop")} == {60}
    assert fake_docker.removed == [W2, W1]
    assert fake_docker.names() == [CP0, W0]


@pytest.mark.asyncio
async def test_scale_to_zero_leaves_control_plane(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=2))

    await provider.update_cluster(make_cluster(workers=0))

    assert fake_docker.names() == [CP0]
    assert fake_docker.containers_by_name[CP0]["State"] == "running"


@pytest.mark.asyncio
async def test_scale_up_adds_workers(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=1))
    fake_docker.calls.clear()

    await provider.update_cluster(make_cluster(workers=3))

    assert fake_docker.of("create") == [("create", W1), ("create", W2)]
    status = await provider.get_cluster_status(make_cluster(workers=3))
    assert status.phase == "Running"


@pytest.mark.asyncio
async def test_scale_up_starts_stopped_worker(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=2))
    await fake_docker.containers_by_name[W0].stop()
    fake_docker.calls.clear()

    await provider.update_cluster(make_cluster(workers=2))

    assert fake_docker.of("create") == []
    assert fake_docker.of("start") == [("start", W0)]


@pytest.mark.asyncio
async def test_update_with_matching_count_is_noop(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=2))
    fake_docker.calls.clear()

    await provider.update_cluster(make_cluster(workers=2))

    assert [c for c in fake_docker.calls if c[0] != "pull"] == []


@pytest.mark.asyncio
async def test_scale_down_aborts_on_remove_failure(provider, fake_docker):
    await provider.create_cluster(make_cluster(workers=3))
    fake_docker.fail_delete.add(W2)

    with pytest.raises(RuntimeOperationError):
        await provider.update_cluster(make_cluster(workers=1))

    assert fake_docker.names() == [CP0, W0, W1, W2]
    assert fake_docker.of("stop") == [("stop", W2, 60)]


@pytest.mark.asyncio
async def test_stopped_worker_beyond_desired_count_is_removed(provider, fake_docker):
    cluster = make_cluster(workers=2)
    await provider.create_cluster(cluster)
    await fake_docker.containers_by_name[W1].stop()
    fake_docker.calls.clear()

    await provider.update_cluster(make_cluster(workers=1))

    assert fake_docker.names() == [CP0, W0]
    assert fake_docker.of("stop") == [("stop", W1, 60)]
    assert fake_docker.of("create") == []
    status = await provider.get_cluster_status(make_cluster(workers=1))
    assert status.phase == "Running"


@pytest.mark.asyncio
async def test_update_missing_cluster_raises_not_found(provider):
    with pytest.raises(ClusterNotFoundError):
        await provider.update_cluster(make_cluster())


# =============================================================================
# Lifecycle
# =============================================================================


@pytest.mark.asyncio
async def test_create_provider_pings_daemon(docker_config):
    client = FakeDocker()

    provider = await DockerClusterProvider.create(docker_config, client)  # type: ignore[arg-type]

    assert isinstance(provider, DockerClusterProvider)
    assert not client.closed


@pytest.mark.asyncio
async def test_unreachable_daemon_raises_not_ready(docker_config):
    client = FakeDocker(reachable=False)

    with pytest.raises(ProviderNotReadyError):
        await DockerClusterProvider.create(docker_config, client)  # type: ignore[arg-type]

    assert client.closed


@pytest.mark.asyncio
async def test_closed_provider_raises_not_ready(provider, fake_docker):
    await provider.close()

    assert fake_docker.closed
    with pytest.raises(ProviderNotReadyError):
        await provider.get_cluster_status(make_cluster())
