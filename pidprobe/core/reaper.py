"""Cleanup of spawned children.

Every handle in the registry is visited exactly once, in insertion order,
and sent SIGTERM. A child that is already gone is an expected outcome;
any other failure is logged and the pass moves on to the next handle.
Signalled children then get a grace period to exit before SIGKILL, and are
reaped so the probe leaves neither live processes nor zombies behind.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, List, Tuple

import psutil

from .types import ChildHandle, CleanupRecord, CleanupReport, CleanupStatus

logger = logging.getLogger(__name__)


class ProcessReaper:
    def __init__(self, grace_period: float = 2.0, kill_timeout: float = 1.0):
        if grace_period < 0:
            raise ValueError("grace_period must be >= 0")
        self.grace_period = grace_period
        self.kill_timeout = kill_timeout

    def cleanup(self, registry: Iterable[ChildHandle]) -> CleanupReport:
        handles = list(registry)
        logger.debug("Beginning clean up of existing child processes. %d to clean up.", len(handles))

        report = CleanupReport()
        signalled: List[Tuple[ChildHandle, CleanupRecord]] = []
        for handle in handles:
            record = self._terminate(handle)
            report.records.append(record)
            if record.status is CleanupStatus.TERMINATED:
                signalled.append((handle, record))

        self._settle(signalled)

        logger.info(
            "Cleanup finished: %d terminated, %d already gone, %d failed (%d needed SIGKILL).",
            report.terminated, report.already_gone, report.failed, report.killed,
        )
        return report

    def _terminate(self, handle: ChildHandle) -> CleanupRecord:
        pid = handle.pid
        try:
            if handle.has_exited():
                logger.info("Child PID %d was already stopped.", pid)
                return CleanupRecord(pid, CleanupStatus.ALREADY_GONE, "exited before cleanup")
            handle.terminate()
        except psutil.NoSuchProcess:
            logger.info("Child PID %d was already stopped.", pid)
            return CleanupRecord(pid, CleanupStatus.ALREADY_GONE, "no such process")
        except (psutil.Error, OSError) as e:
            logger.warning("Failed to terminate child process %d: %s", pid, e)
            return CleanupRecord(pid, CleanupStatus.FAILED, str(e))

        logger.debug("Successfully terminated child process %d.", pid)
        return CleanupRecord(pid, CleanupStatus.TERMINATED)

    def _settle(self, signalled: List[Tuple[ChildHandle, CleanupRecord]]) -> None:
        """Wait for signalled children, escalating to SIGKILL past the grace period."""
        deadline = time.monotonic() + self.grace_period
        for handle, record in signalled:
            remaining = max(0.0, deadline - time.monotonic())
            try:
                handle.wait(timeout=remaining)
                continue
            except psutil.TimeoutExpired:
                pass
            except (psutil.Error, OSError) as e:
                logger.debug("Could not wait for child process %d: %s", handle.pid, e)
                continue

            logger.warning("Child process %d ignored SIGTERM, sending SIGKILL.", handle.pid)
            try:
                handle.kill()
                record.killed = True
                handle.wait(timeout=self.kill_timeout)
            except psutil.NoSuchProcess:
                pass
            except (psutil.Error, OSError) as e:
                logger.warning("Failed to kill child process %d: %s", handle.pid, e)
                record.detail = str(e)
