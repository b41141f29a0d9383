"""
The Supervisor package.
Runs pg_autoctl services and lets a separate pg_autoctl invocation control them.

The running side is the Supervisor class, which launches the services, keeps
them alive and publishes their pids in the registry file. The controlling side
reads that registry and signals the processes it names: see registry, signals,
restart and status.
"""
from .supervisor import Supervisor

__all__ = ['Supervisor']
