"""Messages exchanged by the controller's actors.

Each actor's message union is its public API: the manager supervises, the
watcher turns store changes into queue entries, and workers drain the queue.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from casty import ActorRef

if TYPE_CHECKING:
    from minik8s.api.model import ObjectKey
    from minik8s.controller.reconciler import Result
    from minik8s.store import WatchEvent

type WorkerId = int


# =============================================================================
# Manager
# =============================================================================


@dataclass(frozen=True, slots=True)
class StopManager:
    reply_to: ActorRef[ManagerStopped]


@dataclass(frozen=True, slots=True)
class ManagerStopped:
    pass


@dataclass(frozen=True, slots=True)
class WorkerExited:
    worker_id: WorkerId
    reason: str = ""


type ManagerMsg = StopManager | WorkerExited


# =============================================================================
# Watch
# =============================================================================


@dataclass(frozen=True, slots=True)
class _Changed:
    event: WatchEvent


@dataclass(frozen=True, slots=True)
class _WatchEnded:
    error: str = ""


type WatchMsg = _Changed | _WatchEnded


# =============================================================================
# Worker
# =============================================================================


@dataclass(frozen=True, slots=True)
class _Dequeued:
    key: ObjectKey


@dataclass(frozen=True, slots=True)
class _Reconciled:
    key: ObjectKey
    result: Result


@dataclass(frozen=True, slots=True)
class _ReconcileFailed:
    key: ObjectKey
    error: BaseException


@dataclass(frozen=True, slots=True)
class _QueueClosed:
    reason: str = ""


type WorkerMsg = _Dequeued | _Reconciled | _ReconcileFailed | _QueueClosed
