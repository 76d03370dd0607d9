"""
Structured logging for worker lifecycle and fetch events.

Every event goes to the regular 'sitecache.events' logger as a one-line
'[event] key=value' message. When a log directory is given, events are also
appended to a JSON-lines file, one object per event.
"""

import json
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import IO, Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable logs.

    Usage:
        logger = StructuredLogger("sitecache.events", log_dir=Path("logs"))
        logger.info("cache_hit", url="https://example.com/")
    """

    def __init__(self, name: str, log_dir: Path | None = None, enable_json: bool = True):
        self.name = name
        self._logger = logging.getLogger(name)
        self.json_path: Path | None = None
        self._stream: IO[str] | None = None

        if enable_json and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.json_path = log_dir / f"sitecache_{stamp}_{os.getpid()}.jsonl"
            self._stream = open(self.json_path, "a", encoding="utf-8")  # noqa: SIM115

        # Added to every JSON entry so runs can be told apart
        self._run = {"pid": os.getpid(), "started": datetime.now().isoformat()}

    @property
    def enable_json(self) -> bool:
        return self._stream is not None and not self._stream.closed

    def _log(self, level: int, event: str, **fields: Any) -> None:
        if self._logger.isEnabledFor(level):
            details = " ".join(f"{key}={value}" for key, value in fields.items())
            self._logger.log(level, f"[{event}] {details}".rstrip())
        if not self.enable_json:
            return

        record = {
            "timestamp": datetime.now().isoformat(),
            "level": logging.getLevelName(level),
            "event": event,
            **self._run,
            **fields,
        }
        try:
            self._stream.write(json.dumps(record, default=str) + "\n")
            self._stream.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def debug(self, event: str, **fields: Any) -> None:
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self._log(logging.ERROR, event, **fields)

    def close(self) -> None:
        if self.enable_json:
            self._stream.close()


class WorkerEventLogger:
    """Specialized logger for worker lifecycle and fetch events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def close(self) -> None:
        self.logger.close()

    def state_changed(self, version: str, old_state: str, new_state: str):
        self.logger.debug(
            "worker_state_changed",
            version=version,
            old_state=old_state,
            new_state=new_state,
        )

    def install_completed(self, version: str, partition: str, asset_count: int):
        self.logger.info(
            "worker_installed",
            version=version,
            partition=partition,
            asset_count=asset_count,
        )

    def install_failed(self, version: str, error: str):
        self.logger.error("worker_install_failed", version=version, error=error)

    def activated(self, version: str, deleted_partitions: list[str]):
        self.logger.info(
            "worker_activated",
            version=version,
            deleted_partitions=deleted_partitions,
        )

    def partition_delete_failed(self, partition: str, error: str):
        self.logger.warning(
            "partition_delete_failed", partition=partition, error=error
        )

    def cache_hit(self, url: str):
        self.logger.debug("cache_hit", url=url)

    def network_fetch(self, url: str, status: int, response_type: str, cached: bool):
        self.logger.debug(
            "network_fetch",
            url=url,
            status=status,
            response_type=response_type,
            cached=cached,
        )

    def offline_fallback(self, url: str, status: int):
        self.logger.warning("offline_fallback", url=url, status=status)

    def cache_write_failed(self, url: str, partition: str, error: str):
        self.logger.warning(
            "cache_write_failed", url=url, partition=partition, error=error
        )


def create_event_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, WorkerEventLogger]:
    """
    Create the structured loggers.

    Returns:
        Tuple of (base_logger, worker_event_logger)
    """
    base = StructuredLogger("sitecache.events", log_dir=log_dir, enable_json=enable_json)
    return base, WorkerEventLogger(base)
