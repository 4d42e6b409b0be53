"""Cluster actuation state machine.

One call to :meth:`ClusterReconciler.reconcile` takes one convergence step
for one cluster key::

    unset → Pending → Provisioning → Running ⇄ Updating
                           ↓            ↓
                         Failed ←───────┘

Deletion is checked before any phase handling. Every status change is
persisted before the call returns; errors are re-raised so the dispatcher
retries the key with backoff, except invalid specs, which are recorded and
left until the spec changes.
"""

from __future__ import annotations

from dataclasses import dataclass

from minik8s.api.model import Cluster, Condition, ConditionStatus, ObjectKey, Phase, set_condition
from minik8s.constants import FAILED_REQUEUE_INTERVAL, FINALIZER, RUNNING_REQUEUE_INTERVAL
from minik8s.core.exceptions import InvalidConfigError
from minik8s.observability.logger import logger
from minik8s.providers.provider import ClusterProvider, ObservedStatus
from minik8s.store import ClusterStore

_log = logger.bind(component="reconciler")

READY = "Ready"


@dataclass(frozen=True, slots=True)
class ControllerSettings:
    """Controller tunables.

    Attributes:
        running_requeue_interval: Seconds between status refreshes of a running cluster.
        failed_requeue_interval: Seconds between revisits of a failed cluster.
        workers: Number of keys reconciled concurrently.
        reconcile_timeout: Upper bound in seconds for one reconcile call.
        failed_remediation: Probe failed clusters and move them back to
            Provisioning (nodes gone) or Running (nodes healthy).
        backoff_base: First retry delay after a reconcile error.
        backoff_max: Cap on the retry delay.
    """

    running_requeue_interval: float = RUNNING_REQUEUE_INTERVAL
    failed_requeue_interval: float = FAILED_REQUEUE_INTERVAL
    workers: int = 2
    reconcile_timeout: float = 600.0
    failed_remediation: bool = False
    backoff_base: float = 1.0
    backoff_max: float = 300.0


@dataclass(frozen=True, slots=True)
class Result:
    """What the dispatcher should do with the key after a successful call.

    ``requeue`` re-enqueues immediately, ``requeue_after`` after a delay;
    neither means the key waits for the next change notification.
    """

    requeue: bool = False
    requeue_after: float | None = None


def _ready(cluster: Cluster, status: ConditionStatus, reason: str, message: str = "") -> tuple[Condition, ...]:
    return set_condition(
        cluster.status.conditions,
        Condition(type=READY, status=status, reason=reason, message=message),
    )


class ClusterReconciler:
    def __init__(
        self,
        store: ClusterStore,
        provider: ClusterProvider,
        settings: ControllerSettings | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or ControllerSettings()

    @property
    def settings(self) -> ControllerSettings:
        return self._settings

    async def reconcile(self, key: ObjectKey) -> Result:
        cluster = await self._store.get(key)
        if cluster is None:
            _log.debug("Cluster {key} is gone, nothing to do", key=key)
            return Result()

        if cluster.deleting:
            return await self._reconcile_delete(cluster)

        if cluster.status.phase is None:
            await self._store.update_status(cluster.with_status(phase=Phase.PENDING))
            _log.info("Cluster {key} observed, phase → Pending", key=key)
            return Result(requeue=True)

        if not cluster.has_finalizer(FINALIZER):
            cluster = await self._store.update(cluster.with_finalizer(FINALIZER))
            _log.debug("Finalizer added to {key}", key=key)

        match cluster.status.phase:
            case Phase.PENDING:
                await self._transition(cluster, Phase.PROVISIONING)
                return Result(requeue=True)
            case Phase.PROVISIONING:
                return await self._provision(cluster)
            case Phase.RUNNING:
                return await self._refresh(cluster)
            case Phase.UPDATING:
                return await self._update(cluster)
            case Phase.FAILED | Phase.DELETING:
                return await self._failed(cluster)

        return Result()

    # =========================================================================
    # Phase handlers
    # =========================================================================

    async def _reconcile_delete(self, cluster: Cluster) -> Result:
        log = _log.bind(key=cluster.key)
        if not cluster.has_finalizer(FINALIZER):
            log.debug("Deletion requested without finalizer, nothing to clean up")
            return Result()

        if cluster.status.phase != Phase.DELETING:
            cluster = await self._transition(cluster, Phase.DELETING)

        try:
            await self._provider.delete_cluster(cluster)
        except Exception as e:
            log.error("Failed to delete cluster: {err}", err=e)
            await self._store.update_status(
                cluster.with_status(message=f"Failed to delete cluster: {e}"),
            )
            raise

        await self._store.update(cluster.without_finalizer(FINALIZER))
        log.info("Cluster resources removed, finalizer released")
        return Result()

    async def _provision(self, cluster: Cluster) -> Result:
        log = _log.bind(key=cluster.key)
        try:
            await self._provider.create_cluster(cluster)
        except Exception as e:
            message = f"Failed to create cluster: {e}"
            log.error(message)
            await self._store.update_status(cluster.with_status(
                phase=Phase.FAILED,
                message=message,
                conditions=_ready(cluster, ConditionStatus.FALSE, "ProvisioningFailed", str(e)),
            ))
            if isinstance(e, InvalidConfigError):
                return Result()
            raise

        await self._store.update_status(cluster.with_status(phase=Phase.RUNNING, message=""))
        log.info("Cluster provisioned, phase → Running")
        return Result()

    async def _refresh(self, cluster: Cluster) -> Result:
        observed = await self._provider.get_cluster_status(cluster)
        spec = cluster.spec

        match observed:
            case ObservedStatus(phase="Running"):
                phase, message = Phase.RUNNING, ""
                conditions = _ready(cluster, ConditionStatus.TRUE, "NodesRunning")
            case ObservedStatus(phase="Pending" | "Starting", control_plane_ready=True):
                phase = Phase.UPDATING
                message = f"{observed.workers_ready}/{spec.workers.count} workers running"
                conditions = _ready(cluster, ConditionStatus.FALSE, "WorkersNotReady", message)
            case ObservedStatus(phase="NotFound"):
                phase, message = Phase.FAILED, "cluster nodes not found"
                conditions = _ready(cluster, ConditionStatus.FALSE, "NodesNotFound", message)
            case _:
                phase, message = Phase.FAILED, "control plane is not ready"
                conditions = _ready(cluster, ConditionStatus.FALSE, "ControlPlaneNotReady", message)

        await self._store.update_status(cluster.with_status(
            phase=phase,
            message=message,
            control_plane_ready=observed.control_plane_ready,
            workers_ready=observed.workers_ready,
            conditions=conditions,
        ))
        if phase != cluster.status.phase:
            _log.bind(key=cluster.key).info(
                "Cluster observed {observed}, phase → {phase}", observed=observed.phase, phase=phase,
            )
        if phase == Phase.UPDATING:
            return Result(requeue=True)
        return Result(requeue_after=self._settings.running_requeue_interval)

    async def _update(self, cluster: Cluster) -> Result:
        log = _log.bind(key=cluster.key)
        try:
            await self._provider.update_cluster(cluster)
        except InvalidConfigError as e:
            message = f"Invalid cluster spec: {e}"
            log.error(message)
            await self._store.update_status(cluster.with_status(
                message=message,
                conditions=_ready(cluster, ConditionStatus.FALSE, "InvalidSpec", str(e)),
            ))
            # waits for the next spec change
            return Result()
        except Exception as e:
            log.error("Failed to update cluster: {err}", err=e)
            await self._store.update_status(
                cluster.with_status(message=f"Failed to update cluster: {e}"),
            )
            raise

        await self._store.update_status(cluster.with_status(phase=Phase.RUNNING, message=""))
        log.info("Cluster updated, phase → Running")
        return Result(requeue_after=self._settings.running_requeue_interval)

    async def _failed(self, cluster: Cluster) -> Result:
        if not self._settings.failed_remediation:
            return Result(requeue_after=self._settings.failed_requeue_interval)

        observed = await self._provider.get_cluster_status(cluster)
        match observed.phase:
            case "NotFound":
                await self._transition(cluster, Phase.PROVISIONING)
                return Result(requeue=True)
            case "Running":
                await self._store.update_status(cluster.with_status(
                    phase=Phase.RUNNING,
                    message="",
                    control_plane_ready=observed.control_plane_ready,
                    workers_ready=observed.workers_ready,
                    conditions=_ready(cluster, ConditionStatus.TRUE, "NodesRunning"),
                ))
                _log.bind(key=cluster.key).info("Failed cluster recovered, phase → Running")
                return Result(requeue_after=self._settings.running_requeue_interval)
        return Result(requeue_after=self._settings.failed_requeue_interval)

    async def _transition(self, cluster: Cluster, phase: Phase) -> Cluster:
        _log.bind(key=cluster.key).info("Phase {old} → {new}", old=cluster.status.phase, new=phase)
        return await self._store.update_status(cluster.with_status(phase=phase))
