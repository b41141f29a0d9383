"""
What each signal means to a running pg_autoctl supervisor or service.

    SIGTERM  graceful stop (default); sent to one service, forces its restart
    SIGINT   fast stop
    SIGQUIT  immediate stop
    SIGHUP   reload configuration
    0        liveness probe only
"""
import signal
import logging
from enum import Enum

import psutil

log = logging.getLogger(__name__)

RELOAD_SIGNAL = signal.SIGHUP
RESTART_SIGNAL = signal.SIGTERM


class NoSuchProcessError(ProcessLookupError):
    """The target pid does not exist anymore."""


class SignalPermissionError(PermissionError):
    """The target pid is 0 or belongs to a process we may not signal."""


class ConflictingStopModeError(ValueError):
    """Both --fast and --immediate were given."""


class StopMode(Enum):
    GRACEFUL = signal.SIGTERM
    FAST = signal.SIGINT
    IMMEDIATE = signal.SIGQUIT

    @property
    def signal(self) -> signal.Signals:
        return self.value

    @classmethod
    def from_flags(cls, fast: bool = False, immediate: bool = False) -> "StopMode":
        """
        Chooses the stop mode from the command line flags.

        :raises ConflictingStopModeError: Both flags are set.
        """
        chosen = [mode for mode, selected in ((cls.FAST, fast), (cls.IMMEDIATE, immediate)) if selected]
        if len(chosen) > 1:
            raise ConflictingStopModeError("Please use either --fast or --immediate, not both")
        return chosen[0] if chosen else cls.GRACEFUL

    @classmethod
    def from_signal(cls, signum: int) -> "StopMode":
        return cls(signal.Signals(signum))


def signal_name(signum: int) -> str:
    if signum == 0:
        return "signal 0"
    return signal.Signals(signum).name


def deliver_signal(pid: int, signum: int) -> None:
    """
    Sends a signal to a pid. Delivery is fire-and-forget.

    :raises SignalPermissionError: pid is not positive, or we may not signal it.
    :raises NoSuchProcessError: No process has this pid.
    """
    if pid <= 0:
        raise SignalPermissionError(f"Refusing to send {signal_name(signum)} to pid {pid}")

    try:
        psutil.Process(pid).send_signal(signum)
    except psutil.NoSuchProcess as e:
        raise NoSuchProcessError(f"Failed to send {signal_name(signum)} to pid {pid}: no such process") from e
    except psutil.AccessDenied as e:
        raise SignalPermissionError(f"Failed to send {signal_name(signum)} to pid {pid}: permission denied") from e
    log.debug(f"Sent {signal_name(signum)} to pid {pid}")


def pid_alive(pid: int) -> bool:
    """Zero-signal probe: True when the pid exists, even if owned by someone else."""
    return pid > 0 and psutil.pid_exists(pid)
