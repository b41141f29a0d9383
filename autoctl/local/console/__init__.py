"""
This module initializes the console package, exposing the command line parser
and command execution.
"""

from .process import build_parser, execute_command, parse_command_line

__all__ = ["build_parser", "execute_command", "parse_command_line"]
