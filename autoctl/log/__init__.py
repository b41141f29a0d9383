"""
Logging module for pg_autoctl.
This module provides the console logging setup and the optional Loki handler.
"""

from .setup import TRACE, setup_logging, verbosity_to_level

__all__ = ["TRACE", "setup_logging", "verbosity_to_level"]
