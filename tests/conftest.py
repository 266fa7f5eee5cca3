import logging

import psutil
import pytest

from pidprobe.config import COMMAND_ENV, GRACE_ENV, LOG_LEVEL_ENV, PROGRESS_ENV, TARGET_ENV
from pidprobe.core.spawner import IProcessSpawner
from pidprobe.core.types import SpawnFailure, SpawnFailureKind, SpawnOutcome


class FakeHandle:
    """Stands in for ChildHandle without touching real processes.

    behaviour:
      alive     - terminates cleanly
      exited    - poll reports it already exited
      vanished  - terminate raises NoSuchProcess
      denied    - terminate raises AccessDenied
      stubborn  - ignores SIGTERM until killed
    """

    def __init__(self, index, pid, events, behaviour="alive"):
        self.index = index
        self.pid = pid
        self.events = events
        self.behaviour = behaviour
        self.terminated = 0
        self.killed = 0

    def has_exited(self):
        self.events.append(("poll", self.pid))
        return self.behaviour == "exited"

    def terminate(self):
        self.events.append(("terminate", self.pid))
        self.terminated += 1
        if self.behaviour == "vanished":
            raise psutil.NoSuchProcess(self.pid)
        if self.behaviour == "denied":
            raise psutil.AccessDenied(self.pid)

    def kill(self):
        self.events.append(("kill", self.pid))
        self.killed += 1

    def wait(self, timeout=None):
        self.events.append(("wait", self.pid))
        if self.behaviour == "stubborn" and not self.killed:
            raise psutil.TimeoutExpired(timeout, self.pid)
        return -15


class ScriptedSpawner(IProcessSpawner):
    """Succeeds ``allowed`` times (None = no limit), then returns ``failure_kind``."""

    def __init__(self, allowed=None, failure_kind=SpawnFailureKind.RESOURCE_EXHAUSTED,
                 behaviours=None, events=None, on_spawn=None):
        self.allowed = allowed
        self.failure_kind = failure_kind
        self.behaviours = behaviours or {}
        self.events = events if events is not None else []
        self.on_spawn = on_spawn
        self.calls = []
        self.handles = []

    def spawn_one(self, index):
        self.calls.append(index)
        self.events.append(("spawn", index))
        if self.on_spawn is not None:
            self.on_spawn(index)
        if self.allowed is not None and len(self.handles) >= self.allowed:
            errno = 11 if self.failure_kind is SpawnFailureKind.RESOURCE_EXHAUSTED else 2
            return SpawnOutcome.failed(SpawnFailure(self.failure_kind, errno, "refused"))
        handle = FakeHandle(index, 1000 + index, self.events,
                            self.behaviours.get(index, "alive"))
        self.handles.append(handle)
        return SpawnOutcome.spawned(handle)


@pytest.fixture
def events():
    return []


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown removes whatever the code under test writes
    for name in (TARGET_ENV, COMMAND_ENV, PROGRESS_ENV, GRACE_ENV, LOG_LEVEL_ENV):
        monkeypatch.setenv(name, "x")
        monkeypatch.delenv(name)


@pytest.fixture(autouse=True)
def debug_logs(caplog):
    caplog.set_level(logging.DEBUG)
