"""Environment driven configuration.

All settings are read from environment variables; the CLI writes its flags
into the environment before calling ``load_config`` so there is a single
source of truth.
"""

from __future__ import annotations

import logging
import math
import os
import shlex
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

from .core.spawner import DEFAULT_CHILD_COMMAND

logger = logging.getLogger(__name__)

TARGET_ENV = "TARGET_PID_COUNT"
COMMAND_ENV = "PIDPROBE_CHILD_COMMAND"
PROGRESS_ENV = "PIDPROBE_PROGRESS_EVERY"
GRACE_ENV = "PIDPROBE_GRACE_PERIOD"
LOG_LEVEL_ENV = "PIDPROBE_LOG_LEVEL"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")


class ConfigurationError(ValueError):
    """Invalid or missing configuration; raised before anything is spawned."""


@dataclass(frozen=True)
class ProbeConfig:
    target_count: int
    child_command: Tuple[str, ...] = DEFAULT_CHILD_COMMAND
    progress_every: int = 10
    grace_period: float = 2.0
    log_level: str = "info"


def parse_target_count(raw: Optional[str]) -> int:
    """Parse the requested spawn count; zero is an error, not an empty run."""
    if raw is None:
        raise ConfigurationError(f"Environment variable '{TARGET_ENV}' was not found.")
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(
            f"Unable to parse '{TARGET_ENV}' as a positive integer. Found value: {raw!r}"
        ) from None
    if value <= 0:
        raise ConfigurationError(
            f"'{TARGET_ENV}' must be a positive integer. Found value: {raw!r}"
        )
    return value


def _positive_int(name: str, raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise ConfigurationError(f"'{name}' must be a positive integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"'{name}' must be a positive integer, got {raw!r}")
    return value


def _non_negative_float(name: str, raw: str) -> float:
    try:
        value = float(raw.strip())
    except ValueError:
        raise ConfigurationError(f"'{name}' must be a number of seconds, got {raw!r}") from None
    if math.isnan(value) or value < 0:
        raise ConfigurationError(f"'{name}' must be >= 0, got {raw!r}")
    return value


def _command(raw: str) -> Tuple[str, ...]:
    try:
        parts = tuple(shlex.split(raw))
    except ValueError as e:
        raise ConfigurationError(f"'{COMMAND_ENV}' could not be parsed: {e}") from None
    if not parts:
        raise ConfigurationError(f"'{COMMAND_ENV}' must not be empty")
    return parts


def load_config(environ: Optional[Mapping[str, str]] = None) -> ProbeConfig:
    env = os.environ if environ is None else environ

    raw_target = env.get(TARGET_ENV)
    if raw_target is None:
        logger.error("Failed to read '%s' - it was not assigned a value or the key was "
                     "incorrectly entered.", TARGET_ENV)
    else:
        logger.debug("Found '%s' environment variable, checking value.", TARGET_ENV)
    target_count = parse_target_count(raw_target)

    log_level = env.get(LOG_LEVEL_ENV, "info").strip().lower()
    if log_level not in LOG_LEVELS:
        raise ConfigurationError(
            f"'{LOG_LEVEL_ENV}' must be one of {', '.join(LOG_LEVELS)}, got {log_level!r}"
        )

    config = ProbeConfig(
        target_count=target_count,
        child_command=_command(env[COMMAND_ENV]) if env.get(COMMAND_ENV) is not None else DEFAULT_CHILD_COMMAND,
        progress_every=_positive_int(PROGRESS_ENV, env[PROGRESS_ENV]) if PROGRESS_ENV in env else 10,
        grace_period=_non_negative_float(GRACE_ENV, env[GRACE_ENV]) if GRACE_ENV in env else 2.0,
        log_level=log_level,
    )
    logger.info("Completed configuring the target PID value for the test. "
                "The test will attempt to spawn %d PIDs.", config.target_count)
    return config
