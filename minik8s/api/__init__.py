"""Cluster resource API: object model and manifests."""

from .manifest import API_VERSION as API_VERSION
from .manifest import ClusterManifest as ClusterManifest
from .manifest import dump_manifest as dump_manifest
from .manifest import parse_manifest as parse_manifest
from .model import Cluster as Cluster
from .model import ClusterSpec as ClusterSpec
from .model import ClusterStatus as ClusterStatus
from .model import Condition as Condition
from .model import ConditionStatus as ConditionStatus
from .model import ControlPlaneConfig as ControlPlaneConfig
from .model import MachineConfig as MachineConfig
from .model import ObjectKey as ObjectKey
from .model import ObjectMeta as ObjectMeta
from .model import Phase as Phase
from .model import WorkerConfig as WorkerConfig
from .model import set_condition as set_condition
from .model import validate_cluster as validate_cluster
from .model import validate_cluster_spec as validate_cluster_spec
