import sys
import socket
import logging
import threading
import requests
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from autoctl.local.config import effective_settings as config


class LokiHandler(logging.Handler):
    """
    A logging handler that ships records to a Grafana Loki instance in batches
    from a background thread. Every pg_autoctl process (CLI invocation,
    supervisor, supervised service) gets its own handler; the `service` label
    tells them apart.
    """
    batch_size = 200

    def __init__(self, url: str, org_id: Optional[str] = None, service: str = "cli"):
        """
        :param url: The base URL of the Loki instance.
        :param org_id: The tenant ID for Loki (sent as 'X-Scope-OrgID').
        :param service: Value of the `service` stream label.
        """
        super().__init__()
        self.url = f"{url.rstrip('/')}/loki/api/v1/push"
        self.org_id = org_id
        self.service = service
        self.hostname = socket.gethostname()
        self.flush_interval = config.LOG_BUFFER_FLUSH_INTERVAL

        self.log_buffer: Deque[Dict[str, Any]] = deque()
        self.buffer_lock = threading.Lock()
        self.stop_event = threading.Event()
        self.flush_thread = threading.Thread(target=self._periodic_flush, daemon=True, name="LokiFlushThread")
        self.flush_thread.start()

    def _periodic_flush(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            self.flush()
        self.flush()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if record.name.startswith('proc.'):
                msg = record.getMessage()
            else:
                msg = self.format(record)

            entry = {
                "stream": {
                    "job": "pg_autoctl",
                    "service": self.service,
                    "level": record.levelname.lower(),
                    "hostname": self.hostname,
                    "logger": record.name,
                },
                "values": [[str(int(record.created * 1e9)), msg]],
            }
            with self.buffer_lock:
                self.log_buffer.append(entry)
                full = len(self.log_buffer) >= self.batch_size
            if full:
                self.flush()
        except Exception as e:
            print(f"ERROR: LokiHandler failed to process a log record: {e}", file=sys.stderr)

    def _drain(self) -> List[Dict[str, Any]]:
        with self.buffer_lock:
            entries = list(self.log_buffer)
            self.log_buffer.clear()
        return entries

    def flush(self) -> None:
        """Sends everything buffered so far. The HTTP call happens outside the lock."""
        entries = self._drain()
        if not entries:
            return

        headers = {'Content-Type': 'application/json'}
        if self.org_id:
            headers['X-Scope-OrgID'] = self.org_id
        try:
            response = requests.post(self.url, json={"streams": entries}, headers=headers, timeout=5)
            # 204 No Content is the success status for Loki push
            if response.status_code != 204:
                print(f"ERROR: Loki returned status {response.status_code}: {response.text}", file=sys.stderr)
        except requests.RequestException as e:
            print(f"CRITICAL: Failed to send {len(entries)} logs to Loki: {e}", file=sys.stderr)

    def close(self) -> None:
        self.stop_event.set()
        if self.flush_thread.is_alive():
            self.flush_thread.join(timeout=self.flush_interval + 2)
        super().close()
