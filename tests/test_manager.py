from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import replace

import pytest

from minik8s.actors.worker import apply_result
from minik8s.api.model import Phase
from minik8s.controller.queue import KeyedWorkQueue
from minik8s.controller.reconciler import ControllerSettings, Result
from minik8s.core.exceptions import RuntimeOperationError
from minik8s.manager import Manager
from minik8s.store import InMemoryClusterStore
from tests.fakes import make_cluster

FAST = ControllerSettings(
    running_requeue_interval=0.05,
    failed_requeue_interval=0.05,
    workers=2,
    reconcile_timeout=5,
    backoff_base=0.01,
    backoff_max=0.05,
)


async def eventually(check: Callable[[], Awaitable[bool]], timeout: float = 5.0) -> None:
    async with asyncio.timeout(timeout):
        while not await check():
            await asyncio.sleep(0.01)


def phase_is(store: InMemoryClusterStore, key, phase: Phase) -> Callable[[], Awaitable[bool]]:
    async def check() -> bool:
        cluster = await store.get(key)
        return cluster is not None and cluster.status.phase == phase
    return check


def gone(store: InMemoryClusterStore, key) -> Callable[[], Awaitable[bool]]:
    async def check() -> bool:
        return await store.get(key) is None
    return check


@pytest.mark.asyncio
async def test_cluster_lifecycle_against_docker(provider, fake_docker):
    store = InMemoryClusterStore()

    async with Manager(store, provider, FAST):
        cluster = await store.create(make_cluster(workers=2))
        await eventually(phase_is(store, cluster.key, Phase.RUNNING))

        async def refreshed() -> bool:
            c = await store.get(cluster.key)
            return c.status.workers_ready == 2 and c.status.control_plane_ready

        await eventually(refreshed)
        assert fake_docker.names() == [
            "cluster-demo-control-plane-0", "cluster-demo-worker-0", "cluster-demo-worker-1",
        ]

        await store.delete(cluster.key)
        await eventually(gone(store, cluster.key))

    assert fake_docker.names() == []
    assert fake_docker.network_names() == []


@pytest.mark.asyncio
async def test_worker_scale_down_converges(provider, fake_docker):
    store = InMemoryClusterStore()

    async with Manager(store, provider, FAST):
        cluster = await store.create(make_cluster(workers=2))
        await eventually(phase_is(store, cluster.key, Phase.RUNNING))

        current = await store.get(cluster.key)
        spec = replace(current.spec, workers=replace(current.spec.workers, count=0))
        await store.update(replace(current, spec=spec))

        async def scaled() -> bool:
            c = await store.get(cluster.key)
            return c.status.phase == Phase.RUNNING and fake_docker.names() == ["cluster-demo-control-plane-0"]

        await eventually(scaled)

    assert [c[1] for c in fake_docker.of("stop")] == ["cluster-demo-worker-1", "cluster-demo-worker-0"]


@pytest.mark.asyncio
async def test_existing_clusters_are_synced_on_start(fake_provider):
    store = InMemoryClusterStore()
    cluster = await store.create(make_cluster())

    async with Manager(store, fake_provider, FAST):
        await eventually(phase_is(store, cluster.key, Phase.RUNNING))

    assert fake_provider.ops()[0] == "create"


@pytest.mark.asyncio
async def test_failed_create_surfaces_in_status(fake_provider):
    fake_provider.create_error = RuntimeOperationError("pull node image", Exception("no such image"))
    store = InMemoryClusterStore()

    async with Manager(store, fake_provider, FAST):
        cluster = await store.create(make_cluster())
        await eventually(phase_is(store, cluster.key, Phase.FAILED))

    stored = await store.get(cluster.key)
    assert "no such image" in stored.status.message
    assert fake_provider.ops().count("create") == 1


@pytest.mark.asyncio
async def test_errors_are_retried_with_backoff(fake_provider):
    fake_provider.status_error = RuntimeOperationError("list containers", Exception("eof"))
    store = InMemoryClusterStore()

    async with Manager(store, fake_provider, FAST) as manager:
        cluster = await store.create(make_cluster())
        await eventually(phase_is(store, cluster.key, Phase.RUNNING))

        async def retried() -> bool:
            return fake_provider.ops().count("status") >= 3

        await eventually(retried)
        assert manager.queue.requeues(cluster.key) >= 1

        fake_provider.status_error = None

        async def recovered() -> bool:
            return manager.queue.requeues(cluster.key) == 0

        await eventually(recovered)


@pytest.mark.asyncio
async def test_manager_stop_is_idempotent(fake_provider):
    manager = Manager(InMemoryClusterStore(), fake_provider, FAST)
    await manager.start()

    await manager.stop()
    await manager.stop()

    assert manager.queue.shutting_down


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("result", "queued"),
    [
        (Result(requeue=True), 1),
        (Result(requeue_after=10), 0),
        (Result(), 0),
    ],
)
async def test_apply_result(result, queued):
    queue: KeyedWorkQueue[str] = KeyedWorkQueue(backoff_base=10)
    queue.enqueue_rate_limited("k")

    apply_result(queue, "k", result)

    assert len(queue) == queued
    assert queue.requeues("k") == (1 if result.requeue else 0)
    queue.shutdown()
