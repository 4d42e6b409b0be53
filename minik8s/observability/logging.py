"""Logging configuration for the controller.

Logging is off until :func:`setup_logging` installs handlers, which the
CLI does from the ``[logging]`` table of the settings file::

    [logging]
    level = "DEBUG"
    file = ".minik8s/controller.log"
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from minik8s.observability.logger import add_handler, disable, enable, remove_handler

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration.

    Attributes:
        level: Minimum level for console output.
        file: Optional log file path; the file always records DEBUG and up.
        console: Whether to log to stderr.
        rotation: File rotation size (e.g. "50 MB").
        retention: Number of rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig) -> list[logging.Handler]:
    """Install handlers for ``config`` and return them for teardown."""
    remove_handler()
    enable()
    handlers: list[logging.Handler] = []

    if config.console:
        handlers.append(add_handler(sys.stderr, level=config.level))

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(add_handler(
            config.file,
            level="DEBUG",
            rotation=config.rotation,
            retention=config.retention,
        ))

    logging.getLogger("casty").setLevel(logging.ERROR)
    return handlers


def teardown_logging(handlers: list[logging.Handler]) -> None:
    for handler in handlers:
        remove_handler(handler)
    disable()
