"""Translation of human-readable machine sizes into runtime units."""

from __future__ import annotations

from typing import TYPE_CHECKING

from minik8s.constants import CPU_PERIOD

if TYPE_CHECKING:
    from minik8s.api.model import MachineConfig

_MEMORY_SUFFIXES: dict[str, int] = {
    "KI": 1024,
    "MI": 1024 ** 2,
    "GI": 1024 ** 3,
}


def parse_memory(memory: str) -> int:
    """Convert a binary memory quantity to bytes.

    Only the ``Ki``, ``Mi`` and ``Gi`` suffixes are recognized (case-insensitive).
    Anything else, including a bare number, yields ``0``; callers must treat
    zero as "unparseable".

    >>> parse_memory("2Gi")
    2147483648
    >>> parse_memory("2")
    0
    """
    value = memory.strip().upper()
    multiplier = next(
        (m for suffix, m in _MEMORY_SUFFIXES.items() if value.endswith(suffix)),
        None,
    )
    if multiplier is None:
        return 0
    try:
        number = int(value[:-2])
    except ValueError:
        return 0
    return number * multiplier


def cpu_quota(cpu_count: int) -> tuple[int, int]:
    """Whole cores expressed as a CFS ``(quota, period)`` pair."""
    return cpu_count * CPU_PERIOD, CPU_PERIOD


def container_resources(machine: MachineConfig) -> dict[str, int]:
    """Host config resource fields for a node container."""
    quota, period = cpu_quota(machine.cpu_count)
    return {
        "Memory": parse_memory(machine.memory),
        "CpuQuota": quota,
        "CpuPeriod": period,
    }
