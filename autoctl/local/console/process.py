import sys
import logging
import argparse
from typing import List, Optional

from autoctl.local.config import effective_settings as config
from autoctl.local.console.handler import (CommandFailed, handle_reload, handle_restart, handle_run,
                                           handle_status, handle_stop)

log = logging.getLogger(__name__)


class CommandLineParser(argparse.ArgumentParser):
    """ArgumentParser that reports usage errors with the bad-arguments exit code."""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(config.EXIT_CODE_BAD_ARGS, f"{self.prog}: error: {message}\n")


def _common_options() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--pgdata", "-D", metavar="PATH", help="path to data directory (default: $PGDATA)")
    common.add_argument("--verbose", "-v", action="count", default=0, help="increase log verbosity (repeatable)")
    common.add_argument("--quiet", "-q", action="store_true", help="only log errors")
    return common


def build_parser() -> CommandLineParser:
    """Builds the `pg_autoctl` command line: run, stop, reload, status, restart."""
    common = _common_options()
    parser = CommandLineParser(prog="pg_autoctl", description="Control the pg_autoctl service.")
    parser.add_argument("--version", "-V", action="version", version=f"%(prog)s {config.VERSION}")
    commands = parser.add_subparsers(dest="command", metavar="command")

    commands.add_parser("run", parents=[common], help="Run the pg_autoctl service (monitor or keeper)")

    stop = commands.add_parser("stop", parents=[common], help="signal the pg_autoctl service for it to stop")
    stop.add_argument("--fast", action="store_true", help="fast shutdown mode for the keeper")
    stop.add_argument("--immediate", action="store_true", help="immediate shutdown mode for the keeper")

    commands.add_parser("reload", parents=[common], help="signal the pg_autoctl for it to reload its configuration")

    status = commands.add_parser("status", parents=[common], help="Display the current status of the pg_autoctl service")
    status.add_argument("--json", action="store_true", help="output data in the JSON format")

    restart = commands.add_parser("restart", parents=[common], help="Restart pg_autoctl sub-processes (services)")
    restart.add_argument("service", choices=["all", *config.RESTART_TARGETS], help="service to restart")

    return parser


def execute_command(command: str, args: argparse.Namespace) -> int:
    """
    Executes a single command.

    :param command: The command name (e.g., 'stop', 'restart').
    :param args: Parsed command line arguments.
    :return int: The process exit code.
    """
    log.debug(f"Executing command: {command}, args: {args}")
    command_map = {
        "run": handle_run,
        "stop": handle_stop,
        "reload": handle_reload,
        "status": handle_status,
        "restart": handle_restart,
    }

    if command not in command_map:
        log.error(f"Unknown command: '{command}'. Use --help for a list of commands.")
        return config.EXIT_CODE_BAD_ARGS

    try:
        command_map[command](args)
    except CommandFailed as e:
        return e.exit_code
    except Exception as e:
        log.critical(f"Unexpected error while running '{command}': {e}", exc_info=True)
        return config.EXIT_CODE_INTERNAL_ERROR
    return config.EXIT_CODE_QUIT


def parse_command_line(argv: Optional[List[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)
