"""
Shared fixtures for the pg_autoctl service control tests.
"""
import os
import logging
from pathlib import Path

import pytest

from autoctl.local.config import effective_settings
from autoctl.local.supervisor import signals


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() replaces the root handlers; put the test runner's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runtime_dirs(tmp_path, monkeypatch):
    """Points the XDG config and runtime directories into tmp_path."""
    config_home = tmp_path / "config"
    runtime_dir = tmp_path / "run"
    monkeypatch.setattr(effective_settings, "CONFIG_HOME", config_home)
    monkeypatch.setattr(effective_settings, "RUNTIME_DIR", runtime_dir)
    monkeypatch.delenv("PGDATA", raising=False)
    return config_home, runtime_dir


@pytest.fixture
def pgdata(tmp_path) -> Path:
    path = tmp_path / "pgdata"
    path.mkdir()
    return path


@pytest.fixture
def write_registry_lines():
    """Writes raw registry lines to a path, creating parent directories."""
    def _write(path: Path, *lines: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def write_postmaster_pid():
    """Writes a postmaster.pid the way Postgres lays it out."""
    def _write(pgdata: Path, pid: int = None, port: int = 5432, status: str = "ready") -> Path:
        pid = os.getpid() if pid is None else pid
        lines = [str(pid), str(pgdata), "1700000000", str(port), "/tmp", "localhost", "  5432001    32768", status]
        path = pgdata / "postmaster.pid"
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write


@pytest.fixture
def sent_signals(monkeypatch):
    """Records deliver_signal() calls instead of signalling real processes."""
    sent = []

    def _deliver(pid, signum):
        sent.append((pid, signum))

    monkeypatch.setattr(signals, "deliver_signal", _deliver)
    return sent
