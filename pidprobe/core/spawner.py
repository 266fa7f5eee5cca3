"""Process spawner abstractions.

The spawn loop only needs a binary answer per attempt: a new child, or a
refusal from the environment. This module defines the interface it talks
to so the psutil backend can be swapped for scripted spawners in tests.

* ``PsutilProcessSpawner`` launches the inert placeholder via psutil.Popen
* ``classify_spawn_error`` maps an ``OSError`` onto a ``SpawnFailureKind``
"""

from __future__ import annotations

import errno
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Sequence, Tuple

import psutil

from .types import ChildHandle, SpawnFailure, SpawnFailureKind, SpawnOutcome

logger = logging.getLogger(__name__)

# Blocks forever on an input that never produces data.
DEFAULT_CHILD_COMMAND: Tuple[str, ...] = ("tail", "-f", "/dev/null")

# fork()/clone() fail with EAGAIN when a pids cgroup or RLIMIT_NPROC is hit.
EXHAUSTION_ERRNOS = frozenset({errno.EAGAIN, errno.EWOULDBLOCK})


def classify_spawn_error(exc: OSError) -> SpawnFailure:
    """Turn a process-creation error into a SpawnFailure value."""
    code = getattr(exc, "errno", None)
    if isinstance(exc, BlockingIOError) or code in EXHAUSTION_ERRNOS:
        kind = SpawnFailureKind.RESOURCE_EXHAUSTED
    else:
        kind = SpawnFailureKind.OTHER
    return SpawnFailure(kind=kind, errno=code, message=str(exc))


class IProcessSpawner(ABC):
    """Abstract interface every spawner backend must implement."""

    @abstractmethod
    def spawn_one(self, index: int) -> SpawnOutcome:
        """Create one placeholder child.

        Must not raise for process-creation failures; those come back as a
        failed ``SpawnOutcome``.
        """


class PsutilProcessSpawner(IProcessSpawner):
    """Spawns ``tail -f /dev/null`` (or a configured command) per request."""

    def __init__(self, command: Sequence[str] = DEFAULT_CHILD_COMMAND):
        if not command:
            raise ValueError("child command must not be empty")
        self.command = list(command)

    def spawn_one(self, index: int) -> SpawnOutcome:  # type: ignore[override]
        try:
            process = psutil.Popen(
                self.command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                close_fds=True,
            )
        except OSError as e:
            failure = classify_spawn_error(e)
            logger.debug("Spawn attempt %d failed (%s): %s", index + 1, failure.kind.value, e)
            return SpawnOutcome.failed(failure)
        return SpawnOutcome.spawned(ChildHandle(index, process))
