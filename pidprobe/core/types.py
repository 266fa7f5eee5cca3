"""Core shared data types for the PID probe.

This module centralizes the lightweight dataclasses passed between the
spawner, the spawn loop and the reaper. Keeping them apart from the
behaviour lets tests build fake handles and scripted outcomes without
touching real processes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

import psutil


class SpawnFailureKind(Enum):
    """Why the environment refused to create a child."""

    RESOURCE_EXHAUSTED = "resource_exhausted"
    OTHER = "other"


@dataclass(frozen=True)
class SpawnFailure:
    """A terminal spawn failure. Never raised, always returned."""

    kind: SpawnFailureKind
    errno: Optional[int]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "errno": self.errno, "message": self.message}


class ChildHandle:
    """Owns one spawned placeholder process.

    Wraps a ``psutil.Popen`` so that signalling goes through psutil's PID
    reuse checks: once the child is gone, ``terminate()`` raises
    ``psutil.NoSuchProcess`` instead of hitting an unrelated process.
    """

    def __init__(self, index: int, process: psutil.Popen):
        self.index = index
        self.process = process
        self.pid: int = process.pid
        self.spawned_at = time.time()

    def has_exited(self) -> bool:
        """Poll (and reap) the child; True once it is no longer running."""
        return self.process.poll() is not None

    def terminate(self) -> None:
        self.process.terminate()

    def kill(self) -> None:
        self.process.kill()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        return self.process.wait(timeout=timeout)

    def __repr__(self) -> str:
        return f"ChildHandle(index={self.index}, pid={self.pid})"


@dataclass(frozen=True)
class SpawnOutcome:
    """Result of a single spawn attempt: a handle or a failure."""

    handle: Optional[ChildHandle] = None
    failure: Optional[SpawnFailure] = None

    @property
    def ok(self) -> bool:
        return self.handle is not None

    @classmethod
    def spawned(cls, handle: ChildHandle) -> "SpawnOutcome":
        return cls(handle=handle)

    @classmethod
    def failed(cls, failure: SpawnFailure) -> "SpawnOutcome":
        return cls(failure=failure)


class ChildRegistry:
    """Insertion-ordered collection of live child handles.

    Only grows while spawning; there is deliberately no way to remove a
    handle, so its length at the end of the loop is the spawned count.
    """

    def __init__(self, capacity: int = 0):
        self.capacity = capacity
        self._handles: List[ChildHandle] = []

    def append(self, handle: ChildHandle) -> None:
        self._handles.append(handle)

    def pids(self) -> List[int]:
        return [h.pid for h in self._handles]

    def __iter__(self) -> Iterator[ChildHandle]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)

    def __bool__(self) -> bool:
        return bool(self._handles)


class CleanupStatus(Enum):
    TERMINATED = "terminated"
    ALREADY_GONE = "already_gone"
    FAILED = "failed"


@dataclass
class CleanupRecord:
    pid: int
    status: CleanupStatus
    detail: str = ""
    killed: bool = False


@dataclass
class CleanupReport:
    """Per-handle outcome of a cleanup pass, in registry order."""

    records: List[CleanupRecord] = field(default_factory=list)

    def count(self, status: CleanupStatus) -> int:
        return sum(1 for r in self.records if r.status is status)

    @property
    def visited(self) -> int:
        return len(self.records)

    @property
    def terminated(self) -> int:
        return self.count(CleanupStatus.TERMINATED)

    @property
    def already_gone(self) -> int:
        return self.count(CleanupStatus.ALREADY_GONE)

    @property
    def failed(self) -> int:
        return self.count(CleanupStatus.FAILED)

    @property
    def killed(self) -> int:
        return sum(1 for r in self.records if r.killed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "visited": self.visited,
            "terminated": self.terminated,
            "already_gone": self.already_gone,
            "failed": self.failed,
            "killed": self.killed,
        }


@dataclass
class RunResult:
    """What a caller inspects once the run is over.

    ``exhausted`` is only set for resource exhaustion; other spawn errors
    also stop the loop but are kept apart in ``failure``.
    """

    target_count: int
    spawned_count: int
    attempts: int
    exhausted: bool = False
    failure: Optional[SpawnFailure] = None
    cancelled: bool = False
    cleanup: Optional[CleanupReport] = None
    pids: Sequence[int] = ()

    @property
    def stopped_early(self) -> bool:
        return self.spawned_count < self.target_count

    @property
    def reached_target(self) -> bool:
        return self.failure is None and not self.cancelled and self.spawned_count == self.target_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_count": self.target_count,
            "attempts": self.attempts,
            "spawned_count": self.spawned_count,
            "exhausted": self.exhausted,
            "failure": self.failure.to_dict() if self.failure else None,
            "cancelled": self.cancelled,
            "cleanup": self.cleanup.to_dict() if self.cleanup else None,
        }
