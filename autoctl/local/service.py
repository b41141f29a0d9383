"""
`pg_autoctl run`: pick the service loop for this node's role and start it.

Both loops follow the same contract: take a parsed NodeConfig, set up their
own view of the local Postgres, then hand control to a Supervisor running
the services of their role. They only come back when the supervisor has
stopped, either on request or on a fatal error.
"""
import logging
import configparser
from pathlib import Path
from typing import Dict, List

from autoctl.local.config import effective_settings as config
from autoctl.local.pathnames import ConfigFilePaths
from autoctl.local.postgres import PostgresSetup
from autoctl.local.role import Role, probe_role
from autoctl.local.supervisor import Supervisor
from autoctl.local.supervisor.process_utils import get_service_args

log = logging.getLogger(__name__)

SERVICES_SECTION = "services"

ROLE_SERVICES = {
    Role.KEEPER: [config.SERVICE_POSTGRES, config.SERVICE_NODE_ACTIVE],
    Role.MONITOR: [config.SERVICE_POSTGRES, config.SERVICE_LISTENER],
}


class NodeConfigError(ValueError):
    """The node configuration cannot be used to start services."""


class MonitorSetupError(RuntimeError):
    """The monitor cannot run against this PGDATA."""


class NodeConfig:
    """The parts of pg_autoctl.cfg the service loops need."""

    def __init__(self, pathnames: ConfigFilePaths, role: Role, service_commands: Dict[str, str]):
        self.pathnames = pathnames
        self.role = role
        self.service_commands = service_commands

    @property
    def pgdata(self) -> Path:
        return self.pathnames.pgdata


def read_node_config(pathnames: ConfigFilePaths, role: Role) -> NodeConfig:
    """
    Reads the [services] section of the node configuration file.

    :raises NodeConfigError: The file cannot be parsed.
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        parser.read(pathnames.config)
    except configparser.Error as e:
        raise NodeConfigError(f"Failed to parse configuration file \"{pathnames.config}\": {e}") from e

    commands = dict(config.DEFAULT_SERVICE_COMMANDS)
    if parser.has_section(SERVICES_SECTION):
        commands.update(parser.items(SERVICES_SECTION))
    return NodeConfig(pathnames, role, commands)


def build_service_args(node_config: NodeConfig) -> Dict[str, List[str]]:
    """
    Resolves the command line of every service the node's role runs.

    :raises NodeConfigError: A service has no command configured.
    """
    services: Dict[str, List[str]] = {}
    for name in ROLE_SERVICES[node_config.role]:
        command = node_config.service_commands.get(name)
        if not command:
            raise NodeConfigError(
                f"No command configured for service \"{name}\" in section [{SERVICES_SECTION}] "
                f"of \"{node_config.pathnames.config}\""
            )
        try:
            services[name] = get_service_args(command, node_config.pgdata)
        except (ValueError, KeyError, IndexError) as e:
            raise NodeConfigError(f"Invalid command for service \"{name}\": {e}") from e
    return services


def _start_supervisor(node_config: NodeConfig) -> bool:
    services = build_service_args(node_config)
    cwd = node_config.pgdata if node_config.pgdata.is_dir() else node_config.pgdata.parent
    supervisor = Supervisor(
        node_config.pathnames.pid,
        services,
        cwd,
        title=f"{config.PROCESS_TITLE}: {node_config.role.value}",
    )
    return supervisor.run()


def run_keeper(node_config: NodeConfig) -> bool:
    """Keeper loop: Postgres and the node-active service. PGDATA may not exist yet."""
    postgres = PostgresSetup(node_config.pgdata)
    if postgres.is_running():
        log.info(f"Postgres is already running in \"{postgres.pgdata}\" with pid {postgres.pid}")
    return _start_supervisor(node_config)


def run_monitor(node_config: NodeConfig) -> bool:
    """
    Monitor loop: Postgres and the listener service.

    :raises MonitorSetupError: PGDATA does not exist.
    """
    postgres = PostgresSetup(node_config.pgdata)
    if not postgres.pgdata.is_dir():
        raise MonitorSetupError(f"Monitor PGDATA \"{postgres.pgdata}\" does not exist")
    if postgres.is_running():
        log.info(f"Postgres is already running in \"{postgres.pgdata}\" with pid {postgres.pid}")
    return _start_supervisor(node_config)


SERVICE_LOOPS = {
    Role.MONITOR: run_monitor,
    Role.KEEPER: run_keeper,
}


def run_service(pathnames: ConfigFilePaths) -> bool:
    """
    Probes the node role and runs the matching service loop.

    :raises RoleProbeError: The configuration file declares no known role.
    :return: True after a requested stop, False when the service failed.
    """
    role = probe_role(pathnames.config)
    log.info(f"Starting pg_autoctl {role.value} service for PGDATA \"{pathnames.pgdata}\"")
    node_config = read_node_config(pathnames, role)
    return SERVICE_LOOPS[role](node_config)
