import sys
import logging

from autoctl.local.config import effective_settings as config
from autoctl.log.handler import LokiHandler

TRACE = 5
logging.addLevelName(TRACE, "TRACE")


class MainFormatter(logging.Formatter):
    """A custom formatter to handle regular logs and raw subprocess logs."""

    def __init__(self) -> None:
        super().__init__(config.LOG_FORMAT)

    def format(self, record):
        # Output relayed from a supervised service is already a full line.
        if record.name.startswith('proc.'):
            return record.getMessage()
        return super().format(record)


def verbosity_to_level(verbose: int = 0, quiet: bool = False) -> int:
    """
    Maps the -v/-q command line counters to a logging level.

    :param verbose: How many times -v was given.
    :param quiet: Whether -q was given; wins over -v.
    :return: A logging level.
    """
    if quiet:
        return logging.ERROR
    if verbose == 1:
        return logging.INFO
    if verbose == 2:
        return logging.DEBUG
    if verbose >= 3:
        return TRACE
    level = logging.getLevelName(config.LOG_LEVEL)
    return level if isinstance(level, int) else logging.INFO


def setup_logging(console_level: int = logging.INFO, service: str = "cli") -> None:
    """
    Configures the root logger.
    This sets up a stderr console handler and optionally Loki, clearing any
    previously configured handlers to prevent duplication. Standard output is
    left to command results.

    :param console_level: The logging level for the console output (e.g., logging.INFO).
    :param service: Name reported to Loki for this process.
    """
    root_logger = logging.getLogger()
    # Set root level to lowest to capture all messages for handler filtering
    root_logger.setLevel(TRACE)

    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(MainFormatter())
    root_logger.addHandler(console_handler)

    # --- Loki Handler (conditional) ---
    if config.LOKI_ENABLED:
        try:
            loki_handler = LokiHandler(url=config.LOKI_URL, org_id=config.LOKI_ORG_ID, service=service)
            loki_handler.setLevel(logging.INFO)
            root_logger.addHandler(loki_handler)
            root_logger.debug(f"Grafana Loki logging handler initialized for {config.LOKI_URL}.")
        except Exception as e:
            root_logger.error(f"Failed to initialize Grafana Loki logging handler: {e}")
