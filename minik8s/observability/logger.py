"""loguru-style logger over stdlib logging, rendered with rich.

Usage::

    from minik8s.observability.logger import logger

    log = logger.bind(component="controller")
    log.info("Reconciled {key} in {ms}ms", key="default/demo", ms=12)

Bound context is attached to every record and rendered as ``[k=v ...]``
after the message by the handlers installed through :func:`add_handler`.
"""

from __future__ import annotations

import inspect
import logging
import logging.handlers
import os
import sys
from typing import Final, TextIO

from rich.console import Console
from rich.logging import RichHandler

TRACE: Final = 5
logging.addLevelName(TRACE, "TRACE")

ROOT: Final = "minik8s"
_root = logging.getLogger(ROOT)

_CONTEXT_KEYS: Final = (
    "component", "actor", "provider", "worker", "cluster", "key", "node",
)


def _format_message(msg: str, args: tuple[object, ...], kwargs: dict[str, object]) -> str:
    if kwargs:
        return msg.format(**kwargs)
    if args:
        return msg.format(*args)
    return msg


def _format_context(extras: dict[str, object]) -> str:
    parts = [f"{k}={extras[k]}" for k in _CONTEXT_KEYS if k in extras]
    return f" [{' '.join(parts)}]" if parts else ""


class BoundLogger:
    __slots__ = ("_extras",)

    def __init__(self, extras: dict[str, object] | None = None) -> None:
        self._extras = extras or {}

    def bind(self, **kwargs: object) -> BoundLogger:
        return BoundLogger({**self._extras, **kwargs})

    def _log(self, level: int, message: str, /, *args: object, **kwargs: object) -> None:
        exc_info = kwargs.pop("exc_info", False)
        frame = inspect.stack()[2]
        target = logging.getLogger(frame.frame.f_globals.get("__name__", ROOT))
        if not target.isEnabledFor(level):
            return
        record = target.makeRecord(
            name=target.name,
            level=level,
            fn=frame.filename,
            lno=frame.lineno,
            msg=_format_message(message, args, kwargs) + _format_context(self._extras),
            args=(),
            exc_info=sys.exc_info() if exc_info else None,
            func=frame.function,
            extra={"extras": self._extras},
        )
        record.filename = os.path.basename(frame.filename)
        target.handle(record)

    def trace(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(TRACE, message, *args, **kwargs)

    def debug(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.DEBUG, message, *args, **kwargs)

    def info(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.INFO, message, *args, **kwargs)

    def warning(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.WARNING, message, *args, **kwargs)

    def error(self, message: str, /, *args: object, **kwargs: object) -> None:
        self._log(logging.ERROR, message, *args, **kwargs)

    def exception(self, message: str, /, *args: object, **kwargs: object) -> None:
        kwargs["exc_info"] = True
        self._log(logging.ERROR, message, *args, **kwargs)


logger = BoundLogger()


def _level(name: str) -> int:
    if name.upper() == "TRACE":
        return TRACE
    return logging.getLevelNamesMapping().get(name.upper(), logging.INFO)


def _rotation_bytes(rotation: str) -> int:
    match rotation.strip().split():
        case [num, unit] if unit.upper() == "MB" and num.isdigit():
            return int(num) * 1024 * 1024
        case [num, unit] if unit.upper() == "KB" and num.isdigit():
            return int(num) * 1024
        case _:
            return 50 * 1024 * 1024


def add_handler(
    sink: str | TextIO,
    *,
    level: str = "INFO",
    rotation: str = "50 MB",
    retention: int = 10,
) -> logging.Handler:
    """Attach a handler to the ``minik8s`` logger tree.

    A string sink is a file path written through a rotating handler;
    anything else is treated as a console stream and rendered by rich.
    """
    numeric = _level(level)
    match sink:
        case str() as path:
            handler: logging.Handler = logging.handlers.RotatingFileHandler(
                path, maxBytes=_rotation_bytes(rotation), backupCount=retention,
            )
            handler.setFormatter(logging.Formatter(
                "%(asctime)s.%(msecs)03d | %(levelname)-8s | "
                "%(name)s:%(funcName)s:%(lineno)d - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            ))
        case _:
            handler = RichHandler(
                level=numeric,
                console=Console(file=sink),
                show_time=True,
                show_level=True,
                show_path=True,
                markup=False,
                rich_tracebacks=True,
            )
    handler.setLevel(numeric)
    _root.addHandler(handler)
    return handler


def remove_handler(handler: logging.Handler | None = None) -> None:
    if handler is None:
        for h in list(_root.handlers):
            _root.removeHandler(h)
            h.close()
        return
    _root.removeHandler(handler)
    handler.close()


def enable() -> None:
    _root.setLevel(TRACE)


def disable() -> None:
    _root.setLevel(logging.CRITICAL + 1)


_root.setLevel(TRACE)
_root.propagate = False
