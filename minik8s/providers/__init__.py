from .provider import ClusterProvider as ClusterProvider
from .provider import ObservedPhase as ObservedPhase
from .provider import ObservedStatus as ObservedStatus
from .provider import ProviderConfig as ProviderConfig
