from .queue import KeyedWorkQueue as KeyedWorkQueue
from .queue import WorkQueue as WorkQueue
from .reconciler import ClusterReconciler as ClusterReconciler
from .reconciler import ControllerSettings as ControllerSettings
from .reconciler import Result as Result
