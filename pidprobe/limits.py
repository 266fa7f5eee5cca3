"""Read-only snapshot of the process-count limits around the probe.

Nothing here influences the run; it only tells the operator which limit
the spawn count should be compared against. Values that cannot be read on
this platform are reported as ``None``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import psutil

try:
    import resource
except ImportError:  # not POSIX
    resource = None  # type: ignore

logger = logging.getLogger(__name__)

CGROUP_ROOT = "/sys/fs/cgroup"


@dataclass
class ProcessLimits:
    nproc_soft: Optional[int] = None
    nproc_hard: Optional[int] = None
    cgroup_pids_max: Optional[int] = None  # None also means "max" (unlimited)
    cgroup_pids_current: Optional[int] = None
    cgroup_path: Optional[str] = None
    visible_processes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _rlimit_value(value: int) -> Optional[int]:
    if resource is None or value == resource.RLIM_INFINITY:
        return None
    return value


def _read_int(path: str) -> Optional[int]:
    try:
        with open(path, "r") as f:
            text = f.read().strip()
    except OSError:
        return None
    if text == "max":
        return None
    try:
        return int(text)
    except ValueError:
        return None


def find_pids_cgroup(proc_cgroup: str = "/proc/self/cgroup",
                     root: str = CGROUP_ROOT) -> Optional[str]:
    """Return the cgroup directory holding this process's pids controller."""
    try:
        with open(proc_cgroup, "r") as f:
            lines = f.read().splitlines()
    except OSError:
        return None

    unified = None
    for line in lines:
        parts = line.split(":", 2)
        if len(parts) != 3:
            continue
        _, controllers, path = parts
        if "pids" in controllers.split(","):
            return os.path.join(root, "pids", path.lstrip("/"))
        if controllers == "":
            unified = os.path.join(root, path.lstrip("/"))
    return unified


def read_limits(proc_cgroup: str = "/proc/self/cgroup", root: str = CGROUP_ROOT) -> ProcessLimits:
    limits = ProcessLimits()

    if resource is not None and hasattr(resource, "RLIMIT_NPROC"):
        soft, hard = resource.getrlimit(resource.RLIMIT_NPROC)
        limits.nproc_soft = _rlimit_value(soft)
        limits.nproc_hard = _rlimit_value(hard)

    path = find_pids_cgroup(proc_cgroup, root)
    if path is not None:
        limits.cgroup_path = path
        limits.cgroup_pids_max = _read_int(os.path.join(path, "pids.max"))
        limits.cgroup_pids_current = _read_int(os.path.join(path, "pids.current"))

    try:
        limits.visible_processes = len(psutil.pids())
    except psutil.Error:
        pass

    return limits


def describe(limits: ProcessLimits) -> Tuple[str, ...]:
    def fmt(v: Optional[int]) -> str:
        return "unlimited" if v is None else str(v)

    lines = [
        f"RLIMIT_NPROC: soft={fmt(limits.nproc_soft)} hard={fmt(limits.nproc_hard)}",
    ]
    if limits.cgroup_path is not None:
        lines.append(
            f"cgroup {limits.cgroup_path}: pids.max={fmt(limits.cgroup_pids_max)} "
            f"pids.current={limits.cgroup_pids_current if limits.cgroup_pids_current is not None else 'unknown'}"
        )
    else:
        lines.append("cgroup pids controller: not found")
    if limits.visible_processes is not None:
        lines.append(f"visible processes: {limits.visible_processes}")
    return tuple(lines)


def log_limits(limits: ProcessLimits, level: int = logging.DEBUG) -> None:
    for line in describe(limits):
        logger.log(level, "%s", line)
