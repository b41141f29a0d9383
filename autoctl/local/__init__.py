"""
Local package for pg_autoctl.

This package provides the merged configuration (`effective_settings`), node
path and role discovery, the local Postgres probe and the service supervisor.
"""

from .config import effective_settings

__all__ = ["effective_settings"]
