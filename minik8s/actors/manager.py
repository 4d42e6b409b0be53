from __future__ import annotations

from casty import ActorContext, Behavior, Behaviors

from minik8s.actors.messages import ManagerMsg, ManagerStopped, StopManager, WorkerExited
from minik8s.actors.watch import watch_actor
from minik8s.actors.worker import worker_actor
from minik8s.api.model import ObjectKey
from minik8s.controller.queue import WorkQueue
from minik8s.controller.reconciler import ClusterReconciler
from minik8s.observability.logger import logger
from minik8s.store import Watch

log = logger.bind(actor="manager")


def manager_actor(
    watch: Watch,
    queue: WorkQueue[ObjectKey],
    reconciler: ClusterReconciler,
) -> Behavior[ManagerMsg]:
    """Supervises one watcher and ``settings.workers`` reconcile workers."""

    workers = max(reconciler.settings.workers, 1)

    async def setup(ctx: ActorContext[ManagerMsg]) -> Behavior[ManagerMsg]:
        ctx.spawn(watch_actor(watch, queue), "watch")
        for i in range(workers):
            ctx.spawn(worker_actor(i, queue, reconciler, manager=ctx.self), f"worker-{i}")
        log.info("Controller started with {n} workers", n=workers)
        return running(workers)

    def running(alive: int) -> Behavior[ManagerMsg]:
        async def receive(ctx: ActorContext[ManagerMsg], msg: ManagerMsg) -> Behavior[ManagerMsg]:
            match msg:
                case WorkerExited(worker_id=wid, reason=reason):
                    log.debug("Worker {wid} exited: {reason}", wid=wid, reason=reason)
                    return running(alive - 1)
                case StopManager(reply_to=reply_to):
                    log.info("Controller stopping ({n} workers alive)", n=alive)
                    queue.shutdown()
                    watch.close()
                    reply_to.tell(ManagerStopped())
                    return Behaviors.stopped()
            return Behaviors.same()

        return Behaviors.receive(receive)

    return Behaviors.setup(setup)
