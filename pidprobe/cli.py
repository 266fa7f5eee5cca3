"""Command line front-end for the PID probe.

Flags are written into the environment and the configuration is then read
back from it, so ``TARGET_PID_COUNT=50 pid-probe`` and
``pid-probe --count 50`` behave the same.
"""

import argparse
import json
import logging
import os
import sys

from .config import (COMMAND_ENV, GRACE_ENV, LOG_LEVEL_ENV, LOG_LEVELS, PROGRESS_ENV,
                     TARGET_ENV, ConfigurationError, load_config)
from .limits import log_limits, read_limits
from .probe import PidProbe

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1

logger = logging.getLogger("pidprobe")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Spawn placeholder processes until the target count or the PID limit is reached")
    parser.add_argument("--count", type=str, default=None,
                        help=f"Number of child processes to attempt (overrides {TARGET_ENV})")
    parser.add_argument("--command", default=None,
                        help=f"Placeholder command line (overrides {COMMAND_ENV}; default: tail -f /dev/null)")
    parser.add_argument("--progress-every", type=str, default=None,
                        help=f"Log every Nth attempt at info level (overrides {PROGRESS_ENV}; default: 10)")
    parser.add_argument("--grace-period", type=str, default=None,
                        help=f"Seconds to wait for children after SIGTERM before SIGKILL "
                             f"(overrides {GRACE_ENV}; default: 2.0)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default=None,
                        help=f"Logging level (overrides {LOG_LEVEL_ENV}; default: info)")
    parser.add_argument("--json", action="store_true", help="Print the run summary as JSON on stdout")
    parser.add_argument("--show-limits", action="store_true",
                        help="Log RLIMIT_NPROC and cgroup pids limits before spawning")
    return parser


def main_cli(argv=None) -> int:
    args = build_parser().parse_args(argv)

    if args.count is not None:
        os.environ[TARGET_ENV] = args.count
    if args.command is not None:
        os.environ[COMMAND_ENV] = args.command
    if args.progress_every is not None:
        os.environ[PROGRESS_ENV] = args.progress_every
    if args.grace_period is not None:
        os.environ[GRACE_ENV] = args.grace_period
    if args.log_level is not None:
        os.environ[LOG_LEVEL_ENV] = args.log_level

    # An invalid level is reported by load_config below, so log at info until then.
    level = os.environ.get(LOG_LEVEL_ENV, "info").strip().lower()
    configure_logging(level if level in LOG_LEVELS else "info")
    logger.debug("Completed logging init, starting configuration stage.")

    try:
        config = load_config(os.environ)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG_ERROR

    log_limits(read_limits(), level=logging.INFO if args.show_limits else logging.DEBUG)

    result = PidProbe(config).run()

    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    return EXIT_OK


def main():
    sys.exit(main_cli())


if __name__ == "__main__":
    main()
