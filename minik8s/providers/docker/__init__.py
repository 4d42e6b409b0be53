from .config import Docker as Docker
from .config import NetworkConfig as NetworkConfig
from .config import ResourceLimit as ResourceLimit
from .config import ResourceLimits as ResourceLimits
from .provider import DockerClusterProvider as DockerClusterProvider
