import os
import time
import signal
import logging
import sys
import threading

import psutil
import pytest

from autoctl.local.config import effective_settings as config
from autoctl.local.supervisor import Supervisor, process_utils, registry, restart
from autoctl.local.supervisor.signals import StopMode

SLEEPER = [sys.executable, "-c", "import time; time.sleep(60)"]
CRASHER = [sys.executable, "-c", "import sys; sys.exit(1)"]


@pytest.fixture
def fast_timings(monkeypatch):
    monkeypatch.setattr(config, "GRACEFUL_SHUTDOWN_TIMEOUT", 5)
    monkeypatch.setattr(config, "RESTART_COOLDOWN_PERIOD", 0)


@pytest.fixture
def supervisor(tmp_path, fast_timings):
    sup = Supervisor(
        tmp_path / "run" / "pg_autoctl.pid",
        {"postgres": SLEEPER, "node active": SLEEPER},
        tmp_path,
        title="pg_autoctl: keeper",
    )
    yield sup
    sup.stop_all(StopMode.IMMEDIATE)


def _kill(proc: psutil.Popen) -> None:
    proc.kill()
    proc.wait(timeout=5)


def test_start_all_publishes_registry(supervisor):
    assert supervisor.start_all()

    parsed = registry.read_registry(supervisor.registry_path)
    assert parsed.supervisor_pid == os.getpid()
    assert parsed.sync_id == str(os.getpgrp())
    assert [entry.name for entry in parsed.services] == ["postgres", "node active"]
    assert [entry.pid for entry in parsed.services] == [
        supervisor.running_procs["postgres"].pid,
        supervisor.running_procs["node active"].pid,
    ]


def test_stop_all_stops_services_and_removes_registry(supervisor):
    supervisor.start_all()
    procs = list(supervisor.running_procs.values())

    supervisor.stop_all(StopMode.GRACEFUL)

    assert not supervisor.registry_path.exists()
    assert all(proc.poll() is not None for proc in procs)


def test_exited_service_is_relaunched(supervisor):
    supervisor.start_all()
    old = supervisor.running_procs["postgres"]
    _kill(old)

    assert supervisor.monitor_services() is False

    new_pid = registry.find_service_pid(supervisor.registry_path, "postgres")
    assert new_pid != old.pid
    assert new_pid == supervisor.running_procs["postgres"].pid


def test_no_relaunch_once_shutdown_requested(supervisor):
    supervisor.start_all()
    old = supervisor.running_procs["postgres"]
    _kill(old)
    supervisor.shutdown_signal_received.set()

    supervisor.monitor_services()

    assert "postgres" not in supervisor.running_procs
    assert registry.find_service_pid(supervisor.registry_path, "postgres") == old.pid


def test_refuses_to_start_when_another_supervisor_is_alive(supervisor, write_registry_lines):
    write_registry_lines(supervisor.registry_path, str(os.getppid()), "1", "100 postgres")

    assert not supervisor.start_all()
    assert supervisor.running_procs == {}


def test_stale_registry_is_overwritten(supervisor, write_registry_lines, monkeypatch):
    write_registry_lines(supervisor.registry_path, "999999", "1", "100 postgres")
    monkeypatch.setattr("autoctl.local.supervisor.supervisor.pid_alive", lambda pid: False)

    assert supervisor.start_all()
    assert registry.read_supervisor_pid(supervisor.registry_path) == os.getpid()


def test_launch_failure_at_startup(tmp_path, fast_timings):
    sup = Supervisor(tmp_path / "pg_autoctl.pid", {"postgres": [str(tmp_path / "no-such-binary")]}, tmp_path)

    assert not sup.start_all()
    assert not sup.registry_path.exists()


def test_gives_up_after_repeated_launch_failures(supervisor, monkeypatch):
    monkeypatch.setattr(config, "MAX_RESTART_ATTEMPTS", 2)
    supervisor.start_all()
    _kill(supervisor.running_procs["postgres"])

    def _fail(*args, **kwargs):
        raise OSError("exec failed")

    monkeypatch.setattr(process_utils, "launch_service", _fail)

    assert supervisor.monitor_services() is False
    assert supervisor.monitor_services() is True
    assert supervisor.restart_failures["postgres"] == 2


def test_restart_is_confirmed_by_a_running_supervisor(supervisor):
    """A real TERM to one service; the supervisor relaunches it and the registry reflects the new pid."""
    supervisor.start_all()
    old_pid = registry.find_service_pid(supervisor.registry_path, "node active")

    done = threading.Event()

    def _supervise():
        while not done.is_set():
            supervisor.monitor_services()
            done.wait(0.02)

    watcher = threading.Thread(target=_supervise, daemon=True)
    watcher.start()
    try:
        cancel = threading.Event()
        timer = threading.Timer(20, cancel.set)
        timer.start()
        try:
            result = restart.restart_service(supervisor.registry_path, "node active", interval=0.02, cancel=cancel)
        finally:
            timer.cancel()
    finally:
        done.set()
        watcher.join(timeout=5)

    assert result.old_pid == old_pid
    assert result.new_pid != old_pid
    # A requested restart is not a failure.
    assert supervisor.restart_failures == {}
    assert registry.find_service_pid(supervisor.registry_path, "postgres") == supervisor.running_procs["postgres"].pid


def test_get_service_args_substitutes_pgdata(tmp_path):
    assert process_utils.get_service_args("postgres -D {pgdata} -p 5433", tmp_path) == [
        "postgres", "-D", str(tmp_path), "-p", "5433",
    ]

    with pytest.raises(ValueError):
        process_utils.get_service_args("   ", tmp_path)


def test_reload_rereads_settings_and_forwards_hup(supervisor, monkeypatch):
    reloads = []
    monkeypatch.setattr(config, "reload", lambda: reloads.append(True) or {})
    supervisor.start_all()
    proc = supervisor.running_procs["postgres"]

    supervisor.reload_services()

    # The sleeper has no SIGHUP handler, so the forwarded signal ends it.
    assert proc.wait(timeout=5) == -signal.SIGHUP
    assert reloads == [True]


def _wait_for_exits(sup: Supervisor) -> None:
    for proc in list(sup.running_procs.values()):
        proc.wait(timeout=10)


def test_crash_looping_service_stops_the_supervisor(tmp_path, fast_timings, monkeypatch):
    monkeypatch.setattr(config, "MAX_RESTART_ATTEMPTS", 2)
    sup = Supervisor(tmp_path / "pg_autoctl.pid", {"postgres": CRASHER}, tmp_path)
    assert sup.start_all()

    try:
        gave_up = False
        for _ in range(10):
            _wait_for_exits(sup)
            if sup.monitor_services():
                gave_up = True
                break
    finally:
        sup.stop_all(StopMode.FAST)

    assert gave_up
    assert sup.restart_failures["postgres"] == 2


def test_service_that_stays_up_is_not_counted_as_failing(tmp_path, fast_timings, monkeypatch):
    monkeypatch.setattr(config, "MAX_RESTART_ATTEMPTS", 2)
    monkeypatch.setattr(config, "MIN_SERVICE_UPTIME", 0)
    sup = Supervisor(tmp_path / "pg_autoctl.pid", {"postgres": CRASHER}, tmp_path)
    assert sup.start_all()

    try:
        for _ in range(4):
            _wait_for_exits(sup)
            assert sup.monitor_services() is False
    finally:
        sup.stop_all(StopMode.FAST)

    assert sup.restart_failures == {}


def test_failure_count_clears_once_service_is_stable(supervisor, monkeypatch):
    supervisor.start_all()
    _kill(supervisor.running_procs["postgres"])
    supervisor.monitor_services()
    assert supervisor.restart_failures == {"postgres": 1}

    monkeypatch.setattr(config, "MIN_SERVICE_UPTIME", 0)
    supervisor.monitor_services()

    assert supervisor.restart_failures == {}


def test_service_output_is_relayed_to_its_logger(tmp_path, caplog):
    caplog.set_level(logging.INFO, logger="proc.listener")
    running = {}
    proc = process_utils.launch_service(running, "listener", [sys.executable, "-c", "print('listening')"], tmp_path)
    proc.wait(timeout=10)

    deadline = time.time() + 5
    while time.time() < deadline and not any(r.name == "proc.listener" for r in caplog.records):
        time.sleep(0.05)

    assert running == {"listener": proc}
    assert [(r.levelno, r.getMessage()) for r in caplog.records if r.name == "proc.listener"] == [(logging.INFO, "listening")]
