"""
This module contains the configuration settings for pg_autoctl service control.
It defines paths, exit codes, supervisor timings, logging configuration and the
fixed set of supervised services. Env-driven values may be overridden through
the environment or a .env file.
"""

import os
import pathlib
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

#* --- Core Paths ---
CONFIG_HOME = pathlib.Path(os.getenv("XDG_CONFIG_HOME") or pathlib.Path.home() / ".config")
RUNTIME_DIR = pathlib.Path(os.getenv("XDG_RUNTIME_DIR") or "/tmp")
APP_DIR_NAME = "pg_autoctl"
CONFIG_FILE_NAME = "pg_autoctl.cfg"
REGISTRY_FILE_NAME = "pg_autoctl.pid"
POSTMASTER_PID_FILE_NAME = "postmaster.pid"
OVERRIDES_JSON_PATH = CONFIG_HOME / APP_DIR_NAME / "overrides.json"

#* --- Exit Codes ---
EXIT_CODE_QUIT = 0
EXIT_CODE_BAD_ARGS = 1
EXIT_CODE_BAD_CONFIG = 2
EXIT_CODE_BAD_STATE = 3
EXIT_CODE_PGCTL = 5
EXIT_CODE_INTERNAL_ERROR = 12

#* --- Services ---
PROCESS_TITLE = "pg_autoctl"
SERVICE_POSTGRES = "postgres"
SERVICE_LISTENER = "listener"
SERVICE_NODE_ACTIVE = "node active"

# Command-line spelling of each restartable service.
RESTART_TARGETS = {
    "postgres": SERVICE_POSTGRES,
    "listener": SERVICE_LISTENER,
    "node-active": SERVICE_NODE_ACTIVE,
}

DEFAULT_SERVICE_COMMANDS = {
    SERVICE_POSTGRES: "postgres -D {pgdata}",
}

#* --- Supervisor Settings ---
RESTART_POLL_INTERVAL = 0.1    # seconds between registry reads while confirming a restart
SUPERVISOR_SLEEP_INTERVAL = 0.5
MAX_RESTART_ATTEMPTS = 5
MIN_SERVICE_UPTIME = 10        # seconds; an earlier exit counts as a failed restart
RESTART_COOLDOWN_PERIOD = 5    # seconds
GRACEFUL_SHUTDOWN_TIMEOUT = 30 # seconds before force-killing

#* --- Logging ---
LOG_LEVEL = os.getenv("PG_AUTOCTL_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s"
LOG_BUFFER_FLUSH_INTERVAL = 10

# Grafana Loki (optional log shipping)
LOKI_ENABLED = os.getenv("PG_AUTOCTL_LOKI_ENABLED", "False").lower() in ('true', '1', 't')
LOKI_URL = os.getenv("PG_AUTOCTL_LOKI_URL", "http://localhost:3100")
LOKI_ORG_ID = os.getenv("PG_AUTOCTL_LOKI_ORG_ID", "")

#* --- MODIFIABLE SETTINGS (Changeable through overrides.json) ---
MODIFIABLE_SETTINGS = {
    "SUPERVISOR_SLEEP_INTERVAL",
    "MAX_RESTART_ATTEMPTS",
    "MIN_SERVICE_UPTIME",
    "RESTART_COOLDOWN_PERIOD",
    "GRACEFUL_SHUTDOWN_TIMEOUT",
    "LOG_BUFFER_FLUSH_INTERVAL",
}

VERSION = "1.0.0"
