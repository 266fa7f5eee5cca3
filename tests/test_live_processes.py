"""Tests that spawn and reap real placeholder processes."""

import errno
import json
import os
import shutil
import signal
import subprocess
import sys
import time

import psutil
import pytest

from pidprobe.config import ProbeConfig
from pidprobe.core.reaper import ProcessReaper
from pidprobe.core.spawner import PsutilProcessSpawner, classify_spawn_error
from pidprobe.core.types import ChildRegistry, CleanupStatus, SpawnFailureKind
from pidprobe.probe import PidProbe

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

posix_only = pytest.mark.skipif(os.name != "posix" or shutil.which("tail") is None,
                                reason="needs a POSIX system with tail")


def wait_for_zombie(pid, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            if psutil.Process(pid).status() == psutil.STATUS_ZOMBIE:
                return
        except psutil.NoSuchProcess:
            return
        time.sleep(0.02)
    raise AssertionError(f"process {pid} did not exit")


def test_eagain_is_resource_exhaustion():
    failure = classify_spawn_error(BlockingIOError(errno.EAGAIN, "Resource temporarily unavailable"))
    assert failure.kind is SpawnFailureKind.RESOURCE_EXHAUSTED
    assert failure.errno == errno.EAGAIN


@pytest.mark.parametrize("code", [errno.ENOMEM, errno.ENOENT, errno.EACCES])
def test_other_errors_are_not_exhaustion(code):
    failure = classify_spawn_error(OSError(code, os.strerror(code)))
    assert failure.kind is SpawnFailureKind.OTHER
    assert failure.errno == code


def test_missing_binary_is_a_spawn_failure_not_an_exception():
    outcome = PsutilProcessSpawner(["/nonexistent/placeholder-binary"]).spawn_one(0)
    assert not outcome.ok
    assert outcome.failure.kind is SpawnFailureKind.OTHER


def test_empty_command_rejected():
    with pytest.raises(ValueError):
        PsutilProcessSpawner([])


@posix_only
def test_spawned_placeholder_stays_alive_until_cleanup():
    spawner = PsutilProcessSpawner()
    registry = ChildRegistry()
    try:
        for i in range(3):
            outcome = spawner.spawn_one(i)
            assert outcome.ok
            registry.append(outcome.handle)
        time.sleep(0.1)
        for handle in registry:
            assert handle.process.is_running()
            assert not handle.has_exited()
            assert handle.process.ppid() == os.getpid()
    finally:
        report = ProcessReaper(grace_period=5).cleanup(registry)

    assert report.terminated == 3
    for handle in registry:
        assert handle.process.returncode is not None


@posix_only
def test_externally_killed_child_is_already_gone():
    spawner = PsutilProcessSpawner()
    registry = ChildRegistry()
    for i in range(3):
        registry.append(spawner.spawn_one(i).handle)

    victim = list(registry)[1]
    os.kill(victim.pid, signal.SIGKILL)
    wait_for_zombie(victim.pid)

    report = ProcessReaper(grace_period=5).cleanup(registry)
    assert [r.status for r in report.records] == [
        CleanupStatus.TERMINATED, CleanupStatus.ALREADY_GONE, CleanupStatus.TERMINATED]


@posix_only
def test_child_ignoring_sigterm_is_killed():
    spawner = PsutilProcessSpawner(["sh", "-c", "trap '' TERM; while :; do sleep 1; done"])
    registry = ChildRegistry()
    registry.append(spawner.spawn_one(0).handle)
    time.sleep(0.3)

    report = ProcessReaper(grace_period=0.3).cleanup(registry)
    assert report.records[0].killed
    assert list(registry)[0].process.returncode == -signal.SIGKILL


@posix_only
def test_full_run_leaves_no_children():
    result = PidProbe(ProbeConfig(target_count=5, grace_period=5), handle_signals=False).run()

    assert result.reached_target
    assert result.cleanup.terminated == 5
    alive = [c for c in psutil.Process().children() if c.pid in result.pids]
    assert alive == []


@posix_only
@pytest.mark.skipif(os.name == "posix" and os.geteuid() == 0,
                    reason="RLIMIT_NPROC is not enforced for root")
def test_rlimit_nproc_exhaustion_end_to_end():
    import resource

    uid = os.getuid()
    owned = 0
    for proc in psutil.process_iter(["uids"]):
        try:
            if proc.info["uids"] is not None and proc.info["uids"].real == uid:
                owned += proc.num_threads()
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    limit = owned + 1 + 5

    def lower_limit():
        _, hard = resource.getrlimit(resource.RLIMIT_NPROC)
        resource.setrlimit(resource.RLIMIT_NPROC, (limit, hard))

    env = dict(os.environ, PYTHONPATH=PROJECT_ROOT, TARGET_PID_COUNT="200",
               PIDPROBE_GRACE_PERIOD="5")
    proc = subprocess.run([sys.executable, "-m", "pidprobe.cli", "--json"], cwd=PROJECT_ROOT,
                          env=env, capture_output=True, text=True, timeout=60,
                          preexec_fn=lower_limit)

    assert proc.returncode == 0, proc.stderr
    data = json.loads(proc.stdout)
    assert data["exhausted"] is True
    assert data["spawned_count"] < 200
    assert data["attempts"] == data["spawned_count"] + 1
    assert data["cleanup"]["visited"] == data["spawned_count"]
