"""
Forced restart of supervised services.

Sending SIGTERM to a service pid only works as a restart because the
supervisor relaunches every service it manages ("always restart" policy).
There is no acknowledgement channel: the restart is considered done as soon as
the registry lists a different pid for the same service name. That says
nothing about the health of the new process.
"""
import logging
import threading
from pathlib import Path
from collections import namedtuple
from typing import Iterator, List, Optional

from autoctl.log import TRACE
from autoctl.local.config import effective_settings as config
from autoctl.local.supervisor import registry, signals

log = logging.getLogger(__name__)

RestartResult = namedtuple('RestartResult', ['name', 'old_pid', 'new_pid'])


class RestartCancelled(RuntimeError):
    """The wait for a new pid was cancelled before the registry changed."""


def wait_for_new_pid(
    registry_path: Path,
    name: str,
    old_pid: int,
    interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> int:
    """
    Polls the registry until `name` is listed with a pid other than `old_pid`.

    Without a cancel event the wait is unbounded.

    :raises RegistryNotFoundError, ServiceNotFoundError: The entry vanished while waiting.
    :raises RestartCancelled: `cancel` was set first.
    """
    interval = config.RESTART_POLL_INTERVAL if interval is None else interval
    cancel = cancel or threading.Event()

    while True:
        new_pid = registry.find_service_pid(registry_path, name)
        if new_pid != old_pid:
            return new_pid

        log.log(TRACE, f"pidfile \"{registry_path}\" still contains pid {new_pid} for service \"{name}\"")
        if cancel.wait(interval):
            raise RestartCancelled(f"Stopped waiting for service \"{name}\" to restart (pid {old_pid})")


def restart_service(
    registry_path: Path,
    name: str,
    interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> RestartResult:
    """
    Signals one service to terminate and waits for the supervisor to replace it.

    :param registry_path: The supervisor's registry file.
    :param name: Service name as written in the registry (e.g. "node active").
    :return: The old and new pids.
    """
    pid = registry.find_service_pid(registry_path, name)

    log.info(f"Sending the TERM signal to service \"{name}\" with pid {pid}")
    signals.deliver_signal(pid, signals.RESTART_SIGNAL)

    new_pid = wait_for_new_pid(registry_path, name, pid, interval, cancel)
    log.info(f"Service \"{name}\" has been restarted with pid {new_pid}")
    return RestartResult(name, pid, new_pid)


def restart_all(
    registry_path: Path,
    interval: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
) -> Iterator[RestartResult]:
    """
    Restarts every service listed in the registry, one after the other, in file
    order, yielding each result as soon as that restart is confirmed.
    """
    names: List[str] = []
    for entry in registry.read_registry(registry_path).services:
        if entry.name not in names:
            names.append(entry.name)

    for name in names:
        log.info(f"Restarting service \"{name}\"")
        yield restart_service(registry_path, name, interval, cancel)
