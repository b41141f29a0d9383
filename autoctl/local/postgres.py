import logging
from pathlib import Path
from typing import Any, Dict, Optional

from autoctl.local.config import effective_settings as config
from autoctl.local.supervisor.signals import pid_alive

log = logging.getLogger(__name__)

# Line numbers (0-based) in postmaster.pid
PM_PID, PM_DATADIR, PM_START, PM_PORT, PM_SOCKET_DIR, PM_LISTEN_ADDR, PM_SHMEM, PM_STATUS = range(8)

PM_STATUS_READY = "ready"


class PostgresSetup:
    """
    Read-only view of the local Postgres instance, taken from its postmaster.pid.

    The file is read again on every call; nothing is ever written.
    """

    def __init__(self, pgdata: Path):
        self.pgdata = Path(pgdata)
        self.pid: int = 0
        self.port: Optional[int] = None
        self.host: Optional[str] = None
        self.status: Optional[str] = None

    @property
    def postmaster_pid_path(self) -> Path:
        return self.pgdata / config.POSTMASTER_PID_FILE_NAME

    def read_postmaster_pid(self) -> bool:
        """
        Refreshes pid, port, host and status from postmaster.pid.

        :return: True when the file exists and has a pid on its first line.
        """
        self.pid, self.port, self.host, self.status = 0, None, None, None
        try:
            lines = self.postmaster_pid_path.read_text().splitlines()
        except FileNotFoundError:
            log.debug(f"Postgres pid file \"{self.postmaster_pid_path}\" does not exist")
            return False
        except OSError as e:
            log.warning(f"Failed to read Postgres pid file \"{self.postmaster_pid_path}\": {e}")
            return False

        def field(index: int) -> Optional[str]:
            return lines[index].strip() if len(lines) > index and lines[index].strip() else None

        try:
            self.pid = int(field(PM_PID) or 0)
            self.port = int(field(PM_PORT)) if field(PM_PORT) else None
        except ValueError:
            log.warning(f"Postgres pid file \"{self.postmaster_pid_path}\" is malformed")
            self.pid, self.port = 0, None
            return False

        self.host = field(PM_SOCKET_DIR) or field(PM_LISTEN_ADDR)
        self.status = field(PM_STATUS)
        return self.pid > 0

    def is_running(self) -> bool:
        """True when postmaster.pid names a live process."""
        return self.read_postmaster_pid() and pid_alive(self.pid)

    def is_ready(self) -> bool:
        """True when Postgres is running and reports itself ready to accept connections."""
        if not self.is_running():
            log.error(f"Postgres is not running in \"{self.pgdata}\"")
            return False
        if self.status != PM_STATUS_READY:
            log.error(f"Postgres is running with pid {self.pid} but its status is \"{self.status}\"")
            return False
        return True

    def as_dict(self) -> Dict[str, Any]:
        return {
            "pgdata": str(self.pgdata),
            "pid": self.pid,
            "port": self.port,
            "host": self.host,
            "status": self.status,
        }
