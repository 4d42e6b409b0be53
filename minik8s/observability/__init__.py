from .logger import logger as logger
from .logging import (
    LogConfig as LogConfig,
    LogLevel as LogLevel,
    setup_logging as setup_logging,
    teardown_logging as teardown_logging,
)
