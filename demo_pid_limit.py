#!/usr/bin/env python3
"""
Demo script showing the probe hitting a process limit.
Runs main.py in a child interpreter whose RLIMIT_NPROC allows only a few
more processes than the current user already owns, so the spawn loop
reports exhaustion without needing a container or a pids cgroup.

RLIMIT_NPROC is not enforced for root; run this as an unprivileged user.
"""

import argparse
import os
import resource
import subprocess
import sys

import psutil


def print_section(title):
    """Print a formatted section header"""
    print("\n" + "=" * 60)
    print(f" {title}")
    print("=" * 60 + "\n")


def count_user_processes(uid):
    """Number of processes the kernel counts against this user's RLIMIT_NPROC"""
    count = 0
    for proc in psutil.process_iter(['uids']):
        try:
            uids = proc.info['uids']
            if uids is not None and uids.real == uid:
                count += proc.num_threads()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return count


def run_demo(headroom, target, extra_args):
    uid = os.getuid()
    owned = count_user_processes(uid)
    # +1 for the interpreter running main.py itself
    limit = owned + 1 + headroom

    print(f"📋 User {uid} currently owns {owned} tasks")
    print(f"   RLIMIT_NPROC for the probe: {limit} (headroom {headroom})")
    print(f"   Command: python main.py --count {target} {' '.join(extra_args)}")
    print()

    def lower_limit():
        _, hard = resource.getrlimit(resource.RLIMIT_NPROC)
        soft = limit if hard == resource.RLIM_INFINITY else min(limit, hard)
        resource.setrlimit(resource.RLIMIT_NPROC, (soft, hard))

    main_py = os.path.join(os.path.dirname(os.path.abspath(__file__)), "main.py")
    return subprocess.call(
        [sys.executable, main_py, "--count", str(target), *extra_args],
        preexec_fn=lower_limit,
    )


def main():
    parser = argparse.ArgumentParser(description="PID probe - RLIMIT_NPROC demo")
    parser.add_argument("--headroom", type=int, default=5,
                        help="Processes allowed beyond those already running (default: 5)")
    parser.add_argument("--count", type=int, default=20,
                        help="Target count passed to the probe (default: 20)")
    args, extra = parser.parse_known_args()

    print_section("PID probe - Process Limit Demo")

    if os.geteuid() == 0:
        print("⚠️ Running as root: RLIMIT_NPROC is not enforced, the probe will reach its target.")

    code = run_demo(args.headroom, args.count, extra)

    print_section("Result")
    print(f"Probe exited with status {code}")
    print("Expect a 'PID limit reached' warning with a spawned count close to the headroom.")
    return code


if __name__ == "__main__":
    sys.exit(main())
