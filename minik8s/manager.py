"""Controller wiring: store, provider and work queue behind one actor system."""

from __future__ import annotations

from types import TracebackType

from casty import ActorRef, ActorSystem, CastyConfig

from minik8s.actors.manager import manager_actor
from minik8s.actors.messages import ManagerMsg, StopManager
from minik8s.api.model import ObjectKey
from minik8s.controller.queue import KeyedWorkQueue
from minik8s.controller.reconciler import ClusterReconciler, ControllerSettings
from minik8s.observability.logger import logger
from minik8s.providers.provider import ClusterProvider
from minik8s.store import ClusterStore

log = logger.bind(component="manager")


class Manager:
    """Runs the reconcile loop for every cluster in ``store``.

    Usage::

        async with Manager(store, provider, settings):
            await store.create(cluster)
            ...
    """

    def __init__(
        self,
        store: ClusterStore,
        provider: ClusterProvider,
        settings: ControllerSettings | None = None,
        *,
        stop_timeout: float = 30.0,
    ) -> None:
        self.settings = settings or ControllerSettings()
        self.store = store
        self.provider = provider
        self.queue: KeyedWorkQueue[ObjectKey] = KeyedWorkQueue(
            backoff_base=self.settings.backoff_base,
            backoff_max=self.settings.backoff_max,
        )
        self.reconciler = ClusterReconciler(store, provider, self.settings)
        self._stop_timeout = stop_timeout
        self._system: ActorSystem | None = None
        self._ref: ActorRef[ManagerMsg] | None = None

    async def start(self) -> None:
        watch = self.store.watch()
        existing = await self.store.list()

        self._system = ActorSystem("minik8s", config=CastyConfig(
            suppress_dead_letters_on_shutdown=True,
        ))
        await self._system.__aenter__()
        self._ref = self._system.spawn(manager_actor(watch, self.queue, self.reconciler), "manager")

        for cluster in existing:
            self.queue.enqueue(cluster.key)
        log.info("Manager started, {n} clusters queued for initial sync", n=len(existing))

    async def stop(self) -> None:
        if self._system is None:
            return
        try:
            if self._ref is not None:
                await self._system.ask(
                    self._ref,
                    lambda reply_to: StopManager(reply_to=reply_to),
                    timeout=self._stop_timeout,
                )
        finally:
            self.queue.shutdown()
            self._ref = None
            await self._system.__aexit__(None, None, None)
            self._system = None
        log.info("Manager stopped")

    async def __aenter__(self) -> Manager:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()
