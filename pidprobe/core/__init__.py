"""
Spawn / track / cleanup core of the PID probe.
"""

from .controller import SpawnLoopController
from .reaper import ProcessReaper
from .spawner import IProcessSpawner, PsutilProcessSpawner
from .types import (ChildHandle, ChildRegistry, CleanupReport, CleanupStatus, RunResult,
                    SpawnFailure, SpawnFailureKind, SpawnOutcome)

__all__ = [
    'SpawnLoopController', 'ProcessReaper', 'IProcessSpawner', 'PsutilProcessSpawner',
    'ChildHandle', 'ChildRegistry', 'CleanupReport', 'CleanupStatus', 'RunResult',
    'SpawnFailure', 'SpawnFailureKind', 'SpawnOutcome',
]
