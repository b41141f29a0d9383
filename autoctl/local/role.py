import logging
import configparser
from enum import Enum
from pathlib import Path

log = logging.getLogger(__name__)

ROLE_SECTION = "pg_autoctl"
ROLE_OPTION = "role"


class Role(Enum):
    MONITOR = "monitor"
    KEEPER = "keeper"


class RoleProbeError(ValueError):
    """The configuration file does not declare a role we know about."""


def probe_role(config_path: Path) -> Role:
    """
    Reads the role marker (`[pg_autoctl] role`) of a node configuration file.

    :param config_path: The node's pg_autoctl.cfg.
    :raises RoleProbeError: The file is missing, unreadable, or names no known role.
    """
    parser = configparser.ConfigParser(interpolation=None)
    try:
        if not parser.read(config_path):
            raise RoleProbeError(f"Unrecognized configuration file \"{config_path}\": file not found")
    except configparser.Error as e:
        raise RoleProbeError(f"Unrecognized configuration file \"{config_path}\": {e}") from e

    value = parser.get(ROLE_SECTION, ROLE_OPTION, fallback="").strip().lower()
    try:
        role = Role(value)
    except ValueError:
        raise RoleProbeError(f"Unrecognized configuration file \"{config_path}\": role is \"{value}\"")

    log.debug(f"Configuration file \"{config_path}\" has role {role.value}")
    return role
