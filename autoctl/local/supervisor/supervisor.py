import os
import time
import signal
import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

import psutil
import setproctitle

from autoctl.local.config import effective_settings as config
from autoctl.local.supervisor import process_utils, registry, shutdown
from autoctl.local.supervisor.signals import RELOAD_SIGNAL, RESTART_SIGNAL, StopMode, pid_alive, signal_name

log = logging.getLogger(__name__)


class Supervisor:
    """
    Runs a fixed set of services as child processes and keeps them running.

    Every service has the "always restart" policy: whenever one exits, for
    whatever reason, it is launched again under the same name. A service that
    cannot be launched, or that exits within MIN_SERVICE_UPTIME of its launch,
    counts as failing; after MAX_RESTART_ATTEMPTS failures in a row the
    supervisor gives up and stops the whole tree.

    The supervisor owns the registry file and rewrites it each time a pid
    changes, which is what `pg_autoctl restart` watches for.

    Control signals: SIGTERM, SIGINT and SIGQUIT stop the whole tree in
    graceful, fast or immediate mode; SIGHUP is forwarded to every service.
    """

    def __init__(self, registry_path: Path, services: Dict[str, List[str]], cwd: Path, title: str = config.PROCESS_TITLE):
        """
        :param registry_path: Where to write the registry file.
        :param services: Ordered mapping of service name to command line arguments.
        :param cwd: Working directory for the services.
        :param title: Process title for the supervisor.
        """
        self.registry_path = Path(registry_path)
        self.services = dict(services)
        self.cwd = Path(cwd)
        self.title = title
        self.sync_id = str(os.getpgrp())

        self.running_procs: Dict[str, psutil.Popen] = {}
        # Last launched pid per service. An entry is only ever replaced, never
        # dropped, so readers polling for a restart always find the service.
        self.registered_pids: Dict[str, int] = {}
        self.launch_times: Dict[str, float] = {}
        self.restart_failures: Dict[str, int] = {}
        self.restart_cooldown_timers: Dict[str, float] = {}

        self.stop_mode: Optional[StopMode] = None
        self.shutdown_signal_received = threading.Event()
        self.reload_requested = threading.Event()

    #* --- Signal handling ---
    def _handle_stop_signal(self, signum, frame) -> None:
        self.stop_mode = StopMode.from_signal(signum)
        log.info(f"Received {signal_name(signum)}, stopping services ({self.stop_mode.name.lower()} mode)")
        self.shutdown_signal_received.set()

    def _handle_reload_signal(self, signum, frame) -> None:
        log.info(f"Received {signal_name(signum)}, reloading configuration")
        self.reload_requested.set()

    def install_signal_handlers(self) -> None:
        for mode in StopMode:
            signal.signal(mode.signal, self._handle_stop_signal)
        signal.signal(RELOAD_SIGNAL, self._handle_reload_signal)

    #* --- Registry ---
    def write_registry(self) -> None:
        """Rewrites the registry with the latest pid of each service, in configuration order."""
        entries = [
            registry.ServiceEntry(self.registered_pids[name], name)
            for name in self.services
            if name in self.registered_pids
        ]
        try:
            registry.write_registry(self.registry_path, os.getpid(), self.sync_id, entries)
        except OSError as e:
            log.error(f"Failed to write pid file \"{self.registry_path}\": {e}", exc_info=True)

    def check_if_already_running(self) -> bool:
        """
        Checks whether another supervisor already owns the registry.

        :return: True if already running, False otherwise.
        """
        try:
            pid = registry.read_supervisor_pid(self.registry_path)
        except (registry.RegistryNotFoundError, registry.RegistryMalformedError):
            return False
        if pid != os.getpid() and pid_alive(pid):
            log.error(f"pg_autoctl is already running with pid {pid} (pid file \"{self.registry_path}\")")
            return True
        log.warning(f"Overwriting stale pid file \"{self.registry_path}\" (pid {pid})")
        return False

    #* --- Lifecycle ---
    def start_all(self) -> bool:
        """
        Launches every service and publishes the registry.

        :return: True on successful startup, False on failure.
        """
        if self.check_if_already_running():
            return False

        start_time = time.time()
        try:
            for name, args in self.services.items():
                proc = process_utils.launch_service(self.running_procs, name, args, self.cwd)
                self.registered_pids[name] = proc.pid
                self.launch_times[name] = time.time()
        except (OSError, ValueError) as e:
            log.critical(f"Startup failed due to an error: {e}")
            self.stop_all(StopMode.FAST)
            return False

        self.write_registry()
        log.info(f"All {len(self.services)} services started in {time.time() - start_time:.2f} seconds.")
        return True

    def stop_all(self, mode: StopMode = StopMode.GRACEFUL) -> None:
        shutdown.shutdown_sequence(self.running_procs, mode, config.GRACEFUL_SHUTDOWN_TIMEOUT)
        self.running_procs.clear()
        self.registered_pids.clear()
        registry.remove_registry(self.registry_path)

    def reload_services(self) -> None:
        """Re-reads the supervisor's own overrides, then forwards a reload to every running service."""
        config.reload()
        for name, proc in self.running_procs.items():
            try:
                proc.send_signal(RELOAD_SIGNAL)
                log.debug(f"Sent {signal_name(RELOAD_SIGNAL)} to service \"{name}\" (pid {proc.pid})")
            except psutil.NoSuchProcess:
                log.warning(f"Service \"{name}\" (pid {proc.pid}) is gone, not reloading it.")

    def _record_failure(self, name: str) -> None:
        self.restart_failures[name] = self.restart_failures.get(name, 0) + 1
        self.restart_cooldown_timers[name] = time.time() + config.RESTART_COOLDOWN_PERIOD
        log.error(
            f"Service \"{name}\" failed {self.restart_failures[name]} time(s) in a row. "
            f"Cooldown active for {config.RESTART_COOLDOWN_PERIOD}s."
        )

    def _attempt_restart(self, name: str) -> bool:
        """
        Relaunches one service, backing off after failures.

        :return: True if restart was successful, False otherwise.
        """
        if self.restart_cooldown_timers.get(name, 0) > time.time():
            log.debug(f"Service \"{name}\" is in cooldown. Skipping restart.")
            return False

        log.info(f"Restarting service \"{name}\"")
        try:
            proc = process_utils.launch_service(self.running_procs, name, self.services[name], self.cwd)
        except (OSError, ValueError):
            self._record_failure(name)
            return False

        self.registered_pids[name] = proc.pid
        self.launch_times[name] = time.time()
        self.restart_cooldown_timers.pop(name, None)
        self.write_registry()
        return True

    def _reap_exited(self) -> None:
        """
        Drops exited services from `running_procs`.

        An exit within MIN_SERVICE_UPTIME of the launch counts as a failure,
        unless the service was terminated with the restart signal or a stop is in
        progress. A service that stayed up that long has its failure count cleared.
        """
        now = time.time()
        for name, proc in list(self.running_procs.items()):
            uptime = now - self.launch_times.get(name, now)
            if proc.poll() is None:
                if name in self.restart_failures and uptime >= config.MIN_SERVICE_UPTIME:
                    log.info(f"Service \"{name}\" has been up for {uptime:.0f}s, clearing its failure count")
                    self.restart_failures.pop(name)
                continue

            log.warning(f"Service \"{name}\" (pid {proc.pid}) {process_utils.describe_exit(proc)}")
            self.running_procs.pop(name)
            if self.shutdown_signal_received.is_set():
                continue
            if uptime < config.MIN_SERVICE_UPTIME and proc.returncode != -RESTART_SIGNAL:
                self._record_failure(name)

    def monitor_services(self) -> bool:
        """
        Reaps exited services and restarts them.

        :return: True when a service failed MAX_RESTART_ATTEMPTS times in a row.
        """
        self._reap_exited()

        # Services exiting because the tree is being stopped must stay down.
        if self.shutdown_signal_received.is_set():
            return False

        for name in self.services:
            if name in self.running_procs:
                continue
            if self.restart_failures.get(name, 0) >= config.MAX_RESTART_ATTEMPTS:
                log.critical(f"Service \"{name}\" failed {config.MAX_RESTART_ATTEMPTS} times in a row. Stopping.")
                return True
            self._attempt_restart(name)
        return False

    def supervision_loop(self) -> bool:
        """
        Watches services until a stop signal arrives.

        :return: True after a requested stop, False after an unrecoverable failure.
        """
        while not self.shutdown_signal_received.is_set():
            if self.reload_requested.is_set():
                self.reload_requested.clear()
                self.reload_services()

            if self.monitor_services():
                self.stop_all(StopMode.FAST)
                return False

            self.shutdown_signal_received.wait(config.SUPERVISOR_SLEEP_INTERVAL)

        self.stop_all(self.stop_mode or StopMode.GRACEFUL)
        return True

    def run(self) -> bool:
        """
        Starts the services and supervises them until stopped.

        :return: True after a requested stop, False on failure.
        """
        setproctitle.setproctitle(self.title)
        self.install_signal_handlers()

        if not self.start_all():
            return False
        try:
            return self.supervision_loop()
        except Exception as e:
            log.critical(f"Critical error in supervisor loop: {e}", exc_info=True)
            self.stop_all(StopMode.FAST)
            return False
