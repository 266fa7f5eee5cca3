"""Run orchestration: spawn loop, then unconditional cleanup.

``PidProbe`` owns the child registry for the duration of a run. The loop
appends to it, and the reaper consumes it in a ``finally`` block, so the
children are torn down on every exit path: full target, exhaustion, other
spawn error, cancellation by signal, or an unexpected exception.
"""

from __future__ import annotations

import logging
import signal
import threading
from threading import Event
from typing import Dict, Optional

from .config import ProbeConfig
from .core.controller import SpawnLoopController
from .core.reaper import ProcessReaper
from .core.spawner import IProcessSpawner, PsutilProcessSpawner
from .core.types import ChildRegistry, RunResult

logger = logging.getLogger(__name__)

CANCEL_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class PidProbe:
    def __init__(self, config: ProbeConfig, spawner: Optional[IProcessSpawner] = None,
                 reaper: Optional[ProcessReaper] = None, handle_signals: bool = True):
        self.config = config
        self.spawner = spawner if spawner is not None else PsutilProcessSpawner(config.child_command)
        self.reaper = reaper if reaper is not None else ProcessReaper(grace_period=config.grace_period)
        self.handle_signals = handle_signals
        self.stop_event = Event()
        self._previous_handlers: Dict[int, object] = {}

    def cancel(self) -> None:
        """Ask the spawn loop to stop before its next attempt."""
        self.stop_event.set()

    def _signal_handler(self, signum, frame):
        logger.warning("Received signal %d, stopping the spawn loop and cleaning up.", signum)
        self.cancel()

    def _install_signal_handlers(self) -> None:
        if not self.handle_signals or threading.current_thread() is not threading.main_thread():
            return
        for sig in CANCEL_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self._signal_handler)

    def _restore_signal_handlers(self) -> None:
        for sig, handler in self._previous_handlers.items():
            # None: the old handler was not installed from Python
            signal.signal(sig, handler if handler is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def run(self) -> RunResult:
        target = self.config.target_count
        controller = SpawnLoopController(self.spawner, progress_every=self.config.progress_every,
                                         stop_event=self.stop_event)
        registry = ChildRegistry(capacity=target)

        self._install_signal_handlers()
        try:
            result = controller.run(target, registry)
        finally:
            logger.info("Cleaning up the %d tracked child processes spawned during testing.",
                        len(registry))
            try:
                report = self.reaper.cleanup(registry)
            finally:
                self._restore_signal_handlers()

        result.cleanup = report
        self._report(result)
        return result

    def _report(self, result: RunResult) -> None:
        if result.exhausted:
            logger.warning("PID limit reached: spawned %d of %d requested processes.",
                           result.spawned_count, result.target_count)
        elif result.reached_target:
            logger.info("Target reached: spawned all %d requested processes.", result.spawned_count)
        else:
            logger.info("Run finished early: spawned %d of %d requested processes.",
                        result.spawned_count, result.target_count)
