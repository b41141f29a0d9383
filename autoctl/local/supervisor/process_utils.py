import shlex
import logging
import threading
import subprocess
from pathlib import Path
from typing import Dict, List

import psutil

log = logging.getLogger(__name__)


#* --- Process Status ---
def describe_exit(proc: psutil.Popen) -> str:
    """Human readable reason a child exited, from its return code."""
    code = proc.returncode
    if code is None:
        return "still running"
    if code < 0:
        return f"killed by signal {-code}"
    return f"exited with code {code}"


#* --- Process Creation ---
def get_service_args(command: str, pgdata: Path) -> List[str]:
    """
    Expands a configured service command line into Popen arguments.

    :param command: Command template; `{pgdata}` is substituted.
    :param pgdata: The node's data directory.
    """
    args = shlex.split(command.format(pgdata=str(pgdata)))
    if not args:
        raise ValueError(f"Empty command line: \"{command}\"")
    return args


def _read_pipe(pipe, service_name: str, level: int):
    """Target function for reader threads. Reads and logs lines from a subprocess pipe."""
    proc_logger = logging.getLogger(f"proc.{service_name}")
    try:
        for line_bytes in iter(pipe.readline, b""):
            line = line_bytes.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            proc_logger.log(level, line)
    except Exception as e:
        proc_logger.debug(f"Pipe reader for {service_name} stream exited: {e}")
    finally:
        pipe.close()


def log_process_output(process: subprocess.Popen, name: str):
    """Starts background threads to consume and log a process's stdout/stderr."""
    if process.stdout:
        threading.Thread(target=_read_pipe, args=(process.stdout, name, logging.INFO), daemon=True).start()
    if process.stderr:
        threading.Thread(target=_read_pipe, args=(process.stderr, name, logging.WARNING), daemon=True).start()


def launch_service(running_procs: Dict[str, psutil.Popen], name: str, args: List[str], cwd: Path) -> psutil.Popen:
    """
    Launches one service and records it in `running_procs`.

    Children stay in the supervisor's process group so that a terminal
    interrupt reaches the whole tree.
    """
    log.info(f"Starting service \"{name}\": {' '.join(args)}")
    try:
        proc = psutil.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            cwd=str(cwd),
        )
    except (OSError, ValueError) as e:
        log.error(f"Failed to start service \"{name}\": {e}")
        raise

    log_process_output(proc, name)
    running_procs[name] = proc
    log.info(f"Service \"{name}\" started with pid {proc.pid}")
    return proc
