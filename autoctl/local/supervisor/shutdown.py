import logging
from typing import Dict, Iterable, List, Set

import psutil

from autoctl.local.supervisor.signals import StopMode, signal_name

log = logging.getLogger(__name__)


def identify_processes_to_stop(running_procs: Dict[str, psutil.Popen]) -> Set[psutil.Process]:
    """
    Collects every supervised service together with its descendants.

    :param running_procs: The supervisor's name -> process map.
    :return: A set of processes that must be gone once shutdown completes.
    """
    all_procs: Set[psutil.Process] = set()
    for name, proc in running_procs.items():
        if proc.poll() is not None:
            continue
        all_procs.add(proc)
        try:
            all_procs.update(proc.children(recursive=True))
        except psutil.NoSuchProcess:
            log.warning(f"Service \"{name}\" (pid {proc.pid}) no longer exists, skipping children retrieval.")
    return all_procs


def _signal_services(running_procs: Dict[str, psutil.Popen], mode: StopMode) -> None:
    """Sends the stop mode's signal to each service; services pass it on to their own children."""
    for name, proc in running_procs.items():
        if proc.poll() is not None:
            continue
        try:
            log.debug(f"Sending {signal_name(mode.signal)} to service \"{name}\" (pid {proc.pid})")
            proc.send_signal(mode.signal)
        except psutil.NoSuchProcess:
            log.warning(f"Service \"{name}\" (pid {proc.pid}) no longer exists, skipping.")


def _forceful_kill(processes: Iterable[psutil.Process]) -> None:
    """Forcefully kills processes that didn't terminate in time."""
    processes = list(processes)
    if not processes:
        return

    log.warning(f"{len(processes)} processes did not terminate in time. Forcing shutdown...")
    for proc in processes:
        try:
            log.warning(f"Killing stubborn process pid {proc.pid}.")
            proc.kill()
        except psutil.NoSuchProcess:
            continue


def shutdown_sequence(running_procs: Dict[str, psutil.Popen], mode: StopMode, timeout: float) -> None:
    """
    Stops all services with the given mode, then kills whatever is left after `timeout`.

    :param running_procs: The supervisor's name -> process map.
    :param mode: GRACEFUL, FAST or IMMEDIATE; the matching signal is forwarded.
    :param timeout: Seconds to wait before force-killing.
    """
    procs_to_stop = identify_processes_to_stop(running_procs)
    if not procs_to_stop:
        log.info("No running services found to stop.")
        return

    log.info(f"Stopping {len(running_procs)} services ({mode.name.lower()} mode)...")
    _signal_services(running_procs, mode)

    alive: List[psutil.Process]
    try:
        _, alive = psutil.wait_procs(list(procs_to_stop), timeout=timeout)
    except psutil.NoSuchProcess:
        alive = []

    _forceful_kill(alive)
    # Reap the direct children so none is left as a zombie.
    for proc in running_procs.values():
        try:
            proc.wait(timeout=1)
        except (psutil.TimeoutExpired, psutil.NoSuchProcess):
            pass
