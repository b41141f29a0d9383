"""
Status of a pg_autoctl node, pieced together from three facts that are each
observed on their own and may disagree: whether the registry file exists,
whether the supervisor pid it records is alive, and whether the local Postgres
is running and ready.
"""
import json
import logging
from pathlib import Path
from collections import namedtuple
from typing import Any, Dict

from autoctl.local.postgres import PostgresSetup
from autoctl.local.supervisor import registry, signals

log = logging.getLogger(__name__)

StatusSnapshot = namedtuple(
    'StatusSnapshot',
    ['registry_exists', 'supervisor_pid', 'supervisor_alive', 'database_ready', 'database_details'],
)


class OrphanPostgresError(RuntimeError):
    """Postgres is running but no pg_autoctl supervisor registry exists."""


class StalePidError(RuntimeError):
    """The registry names a supervisor pid that is no longer alive."""


def collect_status(registry_path: Path, pgsetup: PostgresSetup) -> StatusSnapshot:
    """
    Takes a fresh snapshot of the node status.

    :raises OrphanPostgresError: No registry, yet Postgres is running.
    :raises StalePidError: The registry's supervisor pid is dead.
    :raises RegistryMalformedError: The registry has no usable supervisor pid.
    """
    # Read once: a registry removed by a stopping supervisor reads as not running.
    try:
        pid = registry.read_supervisor_pid(registry_path)
    except registry.RegistryNotFoundError:
        log.info(f"pg_autoctl pid file \"{registry_path}\" does not exist")
        if pgsetup.is_running():
            raise OrphanPostgresError(
                f"Postgres is running at \"{pgsetup.pgdata}\" with pid {pgsetup.pid}"
            )
        return StatusSnapshot(False, None, False, False, pgsetup.as_dict())

    try:
        signals.deliver_signal(pid, 0)
    except signals.NoSuchProcessError:
        raise StalePidError(f"pg_autoctl pid file contains stale pid {pid}")

    log.info(f"pg_autoctl is running with pid {pid}")
    ready = pgsetup.is_ready()
    if ready:
        log.info(
            f"Postgres is serving PGDATA \"{pgsetup.pgdata}\" on port {pgsetup.port} with pid {pgsetup.pid}"
        )
    return StatusSnapshot(True, pid, True, ready, pgsetup.as_dict())


def status_as_dict(snapshot: StatusSnapshot) -> Dict[str, Any]:
    return {
        "postgres": dict(snapshot.database_details, ready=snapshot.database_ready),
        "pg_autoctl": {
            "pid": snapshot.supervisor_pid,
            "running": snapshot.supervisor_alive,
        },
    }


def render_json(snapshot: StatusSnapshot) -> str:
    return json.dumps(status_as_dict(snapshot), indent=4)


def render_text(snapshot: StatusSnapshot) -> str:
    """Plain text rendering carrying the same facts as render_json()."""
    details = snapshot.database_details
    if snapshot.supervisor_alive:
        lines = [f"pg_autoctl is running with pid {snapshot.supervisor_pid}"]
    else:
        lines = ["pg_autoctl is not running"]

    if snapshot.database_ready:
        lines.append(
            f"Postgres is serving PGDATA \"{details['pgdata']}\" on port {details['port']} "
            f"with pid {details['pid']} (host {details['host']}, status {details['status']})"
        )
    else:
        lines.append(f"Postgres is not ready in PGDATA \"{details['pgdata']}\" (status {details['status']})")
    return "\n".join(lines)
