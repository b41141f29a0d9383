import logging
import argparse

from autoctl.local.config import effective_settings as config
from autoctl.local.pathnames import ConfigFilePaths, PathConfigError
from autoctl.local.postgres import PostgresSetup
from autoctl.local.role import RoleProbeError
from autoctl.local.service import MonitorSetupError, NodeConfigError, run_service
from autoctl.local.supervisor import registry, restart, signals, status

log = logging.getLogger(__name__)


class CommandFailed(Exception):
    """Ends a command with the given exit code; the message has already been logged."""

    def __init__(self, exit_code: int):
        super().__init__(exit_code)
        self.exit_code = exit_code


def _get_pathnames(args: argparse.Namespace) -> ConfigFilePaths:
    try:
        return ConfigFilePaths.from_pgdata(args.pgdata)
    except PathConfigError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_ARGS)
    except (OSError, RuntimeError) as e:
        log.critical(f"Failed to compute pathnames from PGDATA \"{args.pgdata}\": {e}")
        raise CommandFailed(config.EXIT_CODE_BAD_CONFIG)


def _send_signal(pid: int, signum: int) -> None:
    """Delivers a signal once; failures are logged and end the command."""
    try:
        signals.deliver_signal(pid, signum)
    except signals.NoSuchProcessError as e:
        log.error(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)
    except signals.SignalPermissionError as e:
        log.error(str(e))
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    log.info(f"Sent {signals.signal_name(signum)} to pg_autoctl pid {pid}")


def handle_run(args: argparse.Namespace) -> None:
    """Runs the monitor or keeper service, depending on the node's configuration file."""
    pathnames = _get_pathnames(args)
    try:
        stopped_cleanly = run_service(pathnames)
    except RoleProbeError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    except NodeConfigError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_CONFIG)
    except MonitorSetupError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_PGCTL)

    if not stopped_cleanly:
        log.critical("Failed to run the pg_autoctl service, see above for details")
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    log.info("pg_autoctl service stopped")


def handle_stop(args: argparse.Namespace) -> None:
    """Signals the supervisor to stop, using the signal of the requested stop mode."""
    try:
        mode = signals.StopMode.from_flags(fast=args.fast, immediate=args.immediate)
    except signals.ConflictingStopModeError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_ARGS)

    pathnames = _get_pathnames(args)
    try:
        pid = registry.read_supervisor_pid(pathnames.pid)
    except (registry.RegistryNotFoundError, registry.RegistryMalformedError) as e:
        log.critical(f"Failed to read the pg_autoctl pid at \"{pathnames.pid}\": {e}")
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)

    _send_signal(pid, mode.signal)


def handle_reload(args: argparse.Namespace) -> None:
    """Signals the supervisor to reload its configuration. Not running is not an error."""
    pathnames = _get_pathnames(args)
    try:
        pid = registry.read_supervisor_pid(pathnames.pid)
    except registry.RegistryNotFoundError:
        log.info(f"pg_autoctl is not running (no pid file at \"{pathnames.pid}\"), skipping reload")
        return
    except registry.RegistryMalformedError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)

    _send_signal(pid, signals.RELOAD_SIGNAL)


def handle_status(args: argparse.Namespace) -> None:
    """
    Prints the status of the pg_autoctl supervisor and of Postgres, as text or JSON.
    """
    pathnames = _get_pathnames(args)
    pgsetup = PostgresSetup(pathnames.pgdata)

    try:
        snapshot = status.collect_status(pathnames.pid, pgsetup)
    except (status.OrphanPostgresError, status.StalePidError, signals.SignalPermissionError) as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    except registry.RegistryMalformedError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)

    if snapshot.registry_exists and not snapshot.database_ready:
        raise CommandFailed(config.EXIT_CODE_PGCTL)

    print(status.render_json(snapshot) if args.json else status.render_text(snapshot))


def _iter_restarts(service: str, registry_path):
    if service == "all":
        yield from restart.restart_all(registry_path)
    else:
        yield restart.restart_service(registry_path, config.RESTART_TARGETS[service])


def handle_restart(args: argparse.Namespace) -> None:
    """
    Restarts one service, or all of them, and prints each replaced pid on stdout.
    """
    pathnames = _get_pathnames(args)
    try:
        for result in _iter_restarts(args.service, pathnames.pid):
            print(result.old_pid, flush=True)
    except (registry.RegistryNotFoundError, registry.RegistryMalformedError) as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)
    except registry.ServiceNotFoundError as e:
        log.critical(str(e))
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    except signals.NoSuchProcessError as e:
        log.error(str(e))
        raise CommandFailed(config.EXIT_CODE_BAD_STATE)
    except signals.SignalPermissionError as e:
        log.error(str(e))
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
    except (restart.RestartCancelled, KeyboardInterrupt):
        log.error("Interrupted before the supervisor registered a new pid, the restart is unconfirmed")
        raise CommandFailed(config.EXIT_CODE_INTERNAL_ERROR)
