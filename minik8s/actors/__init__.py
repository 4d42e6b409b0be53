from .manager import manager_actor as manager_actor
from .watch import watch_actor as watch_actor
from .worker import apply_result as apply_result
from .worker import worker_actor as worker_actor
