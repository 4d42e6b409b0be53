"""Declarative cluster store.

The reconciler reads desired state from and writes observed state to a
:class:`ClusterStore`. Writes are optimistic: every stored object carries a
``resource_version`` and a write built from a stale read is rejected.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Protocol, runtime_checkable

from minik8s.api.model import Cluster, ObjectKey
from minik8s.core.exceptions import ConflictError, ObjectExistsError, ObjectNotFoundError
from minik8s.observability.logger import logger

log = logger.bind(component="store")


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    type: WatchEventType
    key: ObjectKey


def _same_metadata(a: Cluster, b: Cluster) -> bool:
    return replace(a.metadata, deletion_timestamp=None) == replace(b.metadata, deletion_timestamp=None)


class Watch:
    """A subscription to store changes, iterated until closed."""

    def __init__(self, registry: list[Watch]) -> None:
        self._registry = registry
        self._events: asyncio.Queue[WatchEvent | None] = asyncio.Queue()

    def push(self, event: WatchEvent) -> None:
        self._events.put_nowait(event)

    def close(self) -> None:
        if self in self._registry:
            self._registry.remove(self)
            self._events.put_nowait(None)

    def __aiter__(self) -> Watch:
        return self

    async def __anext__(self) -> WatchEvent:
        event = await self._events.get()
        if event is None:
            raise StopAsyncIteration
        return event


@runtime_checkable
class ClusterStore(Protocol):
    async def get(self, key: ObjectKey) -> Cluster | None: ...

    async def list(self) -> list[Cluster]: ...

    async def create(self, cluster: Cluster) -> Cluster: ...

    async def update(self, cluster: Cluster) -> Cluster:
        """Persist metadata and spec. Status is left untouched."""
        ...

    async def update_status(self, cluster: Cluster) -> Cluster:
        """Persist status only."""
        ...

    async def delete(self, key: ObjectKey) -> None: ...

    def watch(self) -> Watch: ...


class InMemoryClusterStore:
    """Process-local :class:`ClusterStore`.

    Objects are immutable, so handing out the stored instance is safe.
    Writes that change nothing are dropped: no version bump and no event.
    Deleting an object that holds finalizers only marks it; the object is
    purged by the write that removes its last finalizer.
    """

    def __init__(self) -> None:
        self._objects: dict[ObjectKey, Cluster] = {}
        self._version = 0
        self._watchers: list[Watch] = []

    async def get(self, key: ObjectKey) -> Cluster | None:
        return self._objects.get(key)

    async def list(self) -> list[Cluster]:
        return [self._objects[k] for k in sorted(self._objects)]

    async def create(self, cluster: Cluster) -> Cluster:
        key = cluster.key
        if key in self._objects:
            raise ObjectExistsError(str(key))
        stored = replace(cluster, metadata=replace(
            cluster.metadata, deletion_timestamp=None, resource_version=self._next_version(),
        ))
        self._objects[key] = stored
        log.debug("Created {key}", key=key)
        self._publish(WatchEventType.ADDED, key)
        return stored

    async def update(self, cluster: Cluster) -> Cluster:
        current = self._current(cluster)
        if cluster.spec == current.spec and _same_metadata(cluster, current):
            return current
        stored = replace(
            current,
            spec=cluster.spec,
            metadata=replace(
                cluster.metadata,
                deletion_timestamp=current.metadata.deletion_timestamp,
                resource_version=self._next_version(),
            ),
        )
        if stored.deleting and not stored.metadata.finalizers:
            self._purge(stored.key)
            return stored
        self._objects[stored.key] = stored
        self._publish(WatchEventType.MODIFIED, stored.key)
        return stored

    async def update_status(self, cluster: Cluster) -> Cluster:
        current = self._current(cluster)
        if cluster.status == current.status:
            return current
        stored = replace(
            current,
            status=cluster.status,
            metadata=replace(current.metadata, resource_version=self._next_version()),
        )
        self._objects[stored.key] = stored
        self._publish(WatchEventType.MODIFIED, stored.key)
        return stored

    async def delete(self, key: ObjectKey) -> None:
        current = self._objects.get(key)
        if current is None:
            raise ObjectNotFoundError(str(key))
        if not current.metadata.finalizers:
            self._purge(key)
            return
        if current.deleting:
            return
        self._objects[key] = replace(current, metadata=replace(
            current.metadata,
            deletion_timestamp=datetime.now(UTC),
            resource_version=self._next_version(),
        ))
        log.debug("Marked {key} for deletion", key=key)
        self._publish(WatchEventType.MODIFIED, key)

    def watch(self) -> Watch:
        """Subscribe to changes from this point on.

        The subscription is registered on call, so no change made after
        ``watch()`` returns is missed.
        """
        watch = Watch(self._watchers)
        self._watchers.append(watch)
        return watch

    def _current(self, cluster: Cluster) -> Cluster:
        key = cluster.key
        current = self._objects.get(key)
        if current is None:
            raise ObjectNotFoundError(str(key))
        if cluster.metadata.resource_version != current.metadata.resource_version:
            raise ConflictError(
                str(key), cluster.metadata.resource_version, current.metadata.resource_version,
            )
        return current

    def _purge(self, key: ObjectKey) -> None:
        del self._objects[key]
        log.debug("Purged {key}", key=key)
        self._publish(WatchEventType.DELETED, key)

    def _next_version(self) -> int:
        self._version += 1
        return self._version

    def _publish(self, type_: WatchEventType, key: ObjectKey) -> None:
        event = WatchEvent(type_, key)
        for watch in self._watchers:
            watch.push(event)
