import os
import logging
from pathlib import Path
from typing import Optional

from autoctl.local.config import effective_settings as config

log = logging.getLogger(__name__)


class PathConfigError(ValueError):
    """PGDATA is unknown or cannot be turned into pathnames."""


class ConfigFilePaths:
    """
    Where a node keeps its files, derived from PGDATA:

        <XDG_CONFIG_HOME>/pg_autoctl/<pgdata>/pg_autoctl.cfg
        <XDG_RUNTIME_DIR>/pg_autoctl/<pgdata>/pg_autoctl.pid
    """

    def __init__(self, pgdata: Path, config: Path, pid: Path):
        self.pgdata = pgdata
        self.config = config
        self.pid = pid

    @classmethod
    def from_pgdata(cls, pgdata: Optional[str] = None) -> "ConfigFilePaths":
        """
        :param pgdata: The --pgdata value; the PGDATA environment variable is used when empty.
        :raises PathConfigError: Neither is set.
        """
        pgdata = pgdata or os.getenv("PGDATA")
        if not pgdata:
            raise PathConfigError("Failed to get PGDATA either from the environment or from --pgdata")

        pgdata_path = Path(pgdata).expanduser().resolve()
        relative = pgdata_path.relative_to(pgdata_path.anchor)

        paths = cls(
            pgdata=pgdata_path,
            config=Path(config.CONFIG_HOME) / config.APP_DIR_NAME / relative / config.CONFIG_FILE_NAME,
            pid=Path(config.RUNTIME_DIR) / config.APP_DIR_NAME / relative / config.REGISTRY_FILE_NAME,
        )
        log.debug(f"Using config file \"{paths.config}\" and pid file \"{paths.pid}\"")
        return paths

    def __repr__(self) -> str:
        return f"ConfigFilePaths(pgdata={self.pgdata!s}, config={self.config!s}, pid={self.pid!s})"
