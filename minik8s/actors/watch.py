from __future__ import annotations

from casty import ActorContext, Behavior, Behaviors

from minik8s.actors.messages import WatchMsg, _Changed, _WatchEnded
from minik8s.api.model import ObjectKey
from minik8s.controller.queue import WorkQueue
from minik8s.observability.logger import logger
from minik8s.store import Watch

log = logger.bind(actor="watch")


async def _read_next(watch: Watch) -> WatchMsg:
    try:
        return _Changed(event=await anext(watch))
    except StopAsyncIteration:
        return _WatchEnded()


def watch_actor(watch: Watch, queue: WorkQueue[ObjectKey]) -> Behavior[WatchMsg]:
    """Feeds every store change into the work queue until the watch closes."""

    async def setup(ctx: ActorContext[WatchMsg]) -> Behavior[WatchMsg]:
        ctx.pipe_to_self(
            _read_next(watch),
            mapper=lambda msg: msg,
            on_failure=lambda err: _WatchEnded(error=str(err)),
        )
        return Behaviors.with_lifecycle(
            watching(),
            post_stop=lambda _: watch.close(),
        )

    def watching() -> Behavior[WatchMsg]:
        async def receive(ctx: ActorContext[WatchMsg], msg: WatchMsg) -> Behavior[WatchMsg]:
            match msg:
                case _Changed(event=event):
                    log.trace("{type} {key}", type=event.type, key=event.key)
                    queue.enqueue(event.key)
                    ctx.pipe_to_self(
                        _read_next(watch),
                        mapper=lambda msg: msg,
                        on_failure=lambda err: _WatchEnded(error=str(err)),
                    )
                    return Behaviors.same()
                case _WatchEnded(error=error):
                    if error:
                        log.error("Watch failed: {err}", err=error)
                    else:
                        log.debug("Watch closed")
                    return Behaviors.stopped()
            return Behaviors.same()

        return Behaviors.receive(receive)

    return Behaviors.setup(setup)
