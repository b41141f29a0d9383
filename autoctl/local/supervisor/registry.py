"""
The process registry: the file the supervisor keeps at pathnames.pid.

    <supervisor pid>
    <sync object id>
    <pid> <service name>
    ...

The supervisor rewrites the whole file whenever its set of services changes.
Readers never lock it and never cache it; every lookup re-reads the file and
skips lines it cannot make sense of, since a rewrite may be in progress.
"""
import os
import logging
from pathlib import Path
from collections import namedtuple
from typing import Iterable, List, Optional

log = logging.getLogger(__name__)

ServiceEntry = namedtuple('ServiceEntry', ['pid', 'name'])
ProcessRegistry = namedtuple('ProcessRegistry', ['supervisor_pid', 'sync_id', 'services'])

HEADER_LINES = 2


class RegistryNotFoundError(FileNotFoundError):
    """The registry file does not exist; usually the service is not running."""


class RegistryMalformedError(ValueError):
    """The registry file exists but cannot be read or lacks a usable header."""


class ServiceNotFoundError(LookupError):
    """The registry exists but has no entry for the requested service."""


def _parse_pid(text: str) -> Optional[int]:
    try:
        return int(text.strip())
    except ValueError:
        return None


def parse_service_line(line: str) -> Optional[ServiceEntry]:
    """
    Parses one `"<pid> <name>"` data line, splitting on the first space.

    :return: A ServiceEntry, or None when the line cannot be parsed.
    """
    pid_text, sep, name = line.partition(" ")
    if not sep:
        log.debug(f"Failed to find a space separator in line: \"{line}\"")
        return None

    pid = _parse_pid(pid_text)
    if pid is None or not name:
        log.debug(f"Failed to parse a service entry from line: \"{line}\"")
        return None
    return ServiceEntry(pid, name)


def parse_registry_text(text: str) -> ProcessRegistry:
    """
    Builds a ProcessRegistry from the file contents.

    The two header lines are never scanned for service entries. A header that
    does not parse leaves `supervisor_pid` as None rather than failing.
    """
    lines = text.splitlines()
    supervisor_pid = _parse_pid(lines[0]) if lines else None
    sync_id = lines[1].strip() if len(lines) > 1 else ""

    services: List[ServiceEntry] = []
    for line in lines[HEADER_LINES:]:
        if not line.strip():
            continue
        entry = parse_service_line(line)
        if entry is not None:
            services.append(entry)

    return ProcessRegistry(supervisor_pid, sync_id, services)


def read_registry(path: Path) -> ProcessRegistry:
    """
    Reads and parses the registry file.

    :param path: Registry file location.
    :raises RegistryNotFoundError: The file does not exist.
    :raises RegistryMalformedError: The file cannot be read.
    """
    path = Path(path)
    try:
        text = path.read_text()
    except FileNotFoundError:
        raise RegistryNotFoundError(f"pg_autoctl pid file \"{path}\" does not exist")
    except (OSError, UnicodeDecodeError) as e:
        raise RegistryMalformedError(f"Failed to read pid file \"{path}\": {e}")
    return parse_registry_text(text)


def read_supervisor_pid(path: Path) -> int:
    """
    Returns the pid on the first line of the registry.

    :raises RegistryMalformedError: The first line is not a positive pid.
    """
    registry = read_registry(path)
    if registry.supervisor_pid is None or registry.supervisor_pid <= 0:
        raise RegistryMalformedError(f"Failed to read the pg_autoctl pid from \"{path}\"")
    return registry.supervisor_pid


def find_service_pid(path: Path, name: str) -> int:
    """
    Looks up the current pid of a supervised service.

    The file is read on every call. When the same name appears more than once
    the first entry in file order wins.

    :raises RegistryNotFoundError: The registry does not exist.
    :raises ServiceNotFoundError: No entry has this name.
    """
    for entry in read_registry(path).services:
        if entry.name == name:
            return entry.pid
    raise ServiceNotFoundError(f"Failed to find pid for service name \"{name}\"")


def format_registry(supervisor_pid: int, sync_id: str, services: Iterable[ServiceEntry]) -> str:
    lines = [str(supervisor_pid), str(sync_id)]
    lines.extend(f"{entry.pid} {entry.name}" for entry in services)
    return "\n".join(lines) + "\n"


def write_registry(path: Path, supervisor_pid: int, sync_id: str, services: Iterable[ServiceEntry]) -> None:
    """
    Atomically rewrites the registry file. Only the supervisor calls this.

    :param path: Registry file location; parent directories are created.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(f".{os.getpid()}.tmp")
    try:
        temp_path.write_text(format_registry(supervisor_pid, sync_id, services))
        temp_path.replace(path)
    finally:
        temp_path.unlink(missing_ok=True)


def remove_registry(path: Path) -> None:
    Path(path).unlink(missing_ok=True)
    log.debug(f"Removed pid file \"{path}\"")
