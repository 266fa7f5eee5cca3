"""Sequential spawn loop.

Drives a spawner up to ``target_count`` times, one attempt at a time, and
stops at the first refusal. Handles are appended to a registry owned by the
caller so that whatever was spawned can be cleaned up even if the loop is
interrupted.
"""

from __future__ import annotations

import logging
from threading import Event
from typing import Optional

from .spawner import IProcessSpawner
from .types import ChildRegistry, RunResult, SpawnFailureKind

logger = logging.getLogger(__name__)


class SpawnLoopController:
    def __init__(self, spawner: IProcessSpawner, progress_every: int = 10,
                 stop_event: Optional[Event] = None):
        if progress_every < 1:
            raise ValueError("progress_every must be >= 1")
        self.spawner = spawner
        self.progress_every = progress_every
        self.stop_event = stop_event

    def run(self, target_count: int, registry: Optional[ChildRegistry] = None) -> RunResult:
        if target_count < 1:
            raise ValueError(f"target_count must be positive, got {target_count}")
        if registry is None:
            registry = ChildRegistry(capacity=target_count)

        attempts = 0
        failure = None
        cancelled = False

        for i in range(target_count):
            if self.stop_event is not None and self.stop_event.is_set():
                logger.warning("Cancellation requested, stopping before attempt %d of %d.",
                               i + 1, target_count)
                cancelled = True
                break

            self._log_progress(i, target_count)
            attempts += 1
            outcome = self.spawner.spawn_one(i)
            if outcome.ok:
                registry.append(outcome.handle)
                continue

            # No retry: the first refusal ends the loop.
            failure = outcome.failure
            break

        exhausted = failure is not None and failure.kind is SpawnFailureKind.RESOURCE_EXHAUSTED
        result = RunResult(
            target_count=target_count,
            spawned_count=len(registry),
            attempts=attempts,
            exhausted=exhausted,
            failure=failure,
            cancelled=cancelled,
            pids=tuple(registry.pids()),
        )
        self._log_summary(result)
        return result

    def _log_progress(self, i: int, target_count: int) -> None:
        if i == 0:
            logger.info("Starting the first child process.")
        elif (i + 1) % self.progress_every == 0:
            logger.info("Starting child process number %d of %d", i + 1, target_count)
        else:
            logger.debug("Starting child process number %d of %d", i + 1, target_count)

    def _log_summary(self, result: RunResult) -> None:
        if result.exhausted:
            logger.warning(
                "Ran out of processes before reaching the target: %d of %d child processes "
                "were spawned before the environment refused another (%s).",
                result.spawned_count, result.target_count, result.failure.message,
            )
        elif result.failure is not None:
            logger.error(
                "Spawning stopped on an error that does not look like a PID limit after "
                "%d of %d child processes: %s",
                result.spawned_count, result.target_count, result.failure.message,
            )
        elif result.cancelled:
            logger.warning("Run cancelled after spawning %d of %d child processes.",
                           result.spawned_count, result.target_count)
        else:
            logger.info("Successfully spawned %d processes without issue.", result.spawned_count)
