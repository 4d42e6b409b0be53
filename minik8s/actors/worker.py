"""Reconcile worker: one key at a time, pulled from the shared work queue.

Tells this story: pulling → reconciling → pulling → … → stopped (queue shut down).
"""

from __future__ import annotations

import asyncio

from casty import ActorContext, ActorRef, Behavior, Behaviors

from minik8s.actors.messages import (
    ManagerMsg,
    WorkerExited,
    WorkerId,
    WorkerMsg,
    _Dequeued,
    _QueueClosed,
    _ReconcileFailed,
    _Reconciled,
)
from minik8s.api.model import ObjectKey
from minik8s.controller.queue import WorkQueue
from minik8s.controller.reconciler import ClusterReconciler, Result
from minik8s.observability.logger import logger


def apply_result(queue: WorkQueue[ObjectKey], key: ObjectKey, result: Result) -> None:
    if result.requeue:
        queue.enqueue(key)
    elif result.requeue_after is not None:
        queue.forget(key)
        queue.enqueue_after(key, result.requeue_after)
    else:
        queue.forget(key)


def worker_actor(
    worker_id: WorkerId,
    queue: WorkQueue[ObjectKey],
    reconciler: ClusterReconciler,
    manager: ActorRef[ManagerMsg] | None = None,
) -> Behavior[WorkerMsg]:
    log = logger.bind(actor="worker", worker=worker_id)
    timeout = reconciler.settings.reconcile_timeout

    async def _reconcile(key: ObjectKey) -> Result:
        async with asyncio.timeout(timeout):
            return await reconciler.reconcile(key)

    def _pull(ctx: ActorContext[WorkerMsg]) -> None:
        ctx.pipe_to_self(
            queue.dequeue(),
            mapper=lambda key: _Dequeued(key=key),
            on_failure=lambda err: _QueueClosed(reason=str(err)),
        )

    async def setup(ctx: ActorContext[WorkerMsg]) -> Behavior[WorkerMsg]:
        _pull(ctx)
        return pulling()

    def pulling() -> Behavior[WorkerMsg]:
        async def receive(ctx: ActorContext[WorkerMsg], msg: WorkerMsg) -> Behavior[WorkerMsg]:
            match msg:
                case _Dequeued(key=key):
                    log.debug("Reconciling {key}", key=key)
                    ctx.pipe_to_self(
                        _reconcile(key),
                        mapper=lambda result: _Reconciled(key=key, result=result),
                        on_failure=lambda err: _ReconcileFailed(key=key, error=err),
                    )
                    return Behaviors.same()

                case _Reconciled(key=key, result=result):
                    log.debug("Reconciled {key}: {result}", key=key, result=result)
                    apply_result(queue, key, result)
                    queue.done(key)
                    _pull(ctx)
                    return Behaviors.same()

                case _ReconcileFailed(key=key, error=error):
                    match error:
                        case TimeoutError():
                            log.error("Reconcile of {key} timed out after {t}s", key=key, t=timeout)
                        case _:
                            log.error("Reconcile of {key} failed: {err}", key=key, err=error)
                    queue.enqueue_rate_limited(key)
                    queue.done(key)
                    _pull(ctx)
                    return Behaviors.same()

                case _QueueClosed(reason=reason):
                    log.debug("Queue closed, worker exiting")
                    if manager is not None:
                        manager.tell(WorkerExited(worker_id=worker_id, reason=reason))
                    return Behaviors.stopped()

            return Behaviors.same()

        return Behaviors.receive(receive)

    return Behaviors.setup(setup)
