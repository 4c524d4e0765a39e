"""
Structured JSON logging for the Merkle vesting distributor.

Every record is a single JSON object carrying the environment, the service
name and the emitting source location next to whatever ``extra`` payload
the ledger attaches (``event``, ``index``, ``amount``...). Files rotate by
size.

Usage:
    from merkle_vesting.core.logging_config import setup_logging

    logger = setup_logging(log_file="/var/log/merkle_vesting/ledger.json")
    logger.info("Vesting added", extra={"event": "vesting.added", "index": 0})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

DEFAULT_FORMAT = "%(timestamp)s %(level)s %(name)s %(message)s"


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter stamping distributor context onto each record."""

    def __init__(
        self,
        fmt: str = DEFAULT_FORMAT,
        environment: Optional[str] = None,
        service_name: str = "merkle_vesting",
    ):
        super().__init__(fmt=fmt)
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record.setdefault("timestamp", None)
        if not log_record["timestamp"]:
            log_record["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()
        if not log_record.get("level"):
            log_record["level"] = record.levelname.lower()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["source"] = {
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }


def _attach(logger: logging.Logger, handler: logging.Handler, level: int, formatter) -> None:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def setup_logging(
    name: str = "merkle_vesting",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "production",
    enable_console: bool = True,
    enable_file: bool = True,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure ``name`` to emit JSON records.

    Args:
        name: Logger name; its first dotted component becomes the service
        log_file: JSON log file, rotated at ``max_bytes`` (optional)
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: testnet or production
        enable_console: Emit to stderr
        enable_file: Emit to ``log_file`` when one is given
        max_bytes: Rotation threshold for the log file
        backup_count: Rotated files to keep

    Returns:
        The configured logger. Calling again replaces its handlers.
    """
    numeric_level = getattr(logging, level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(numeric_level)
    logger.handlers = []

    formatter = CustomJsonFormatter(
        environment=environment,
        service_name=name.split(".")[0],
    )

    if enable_console:
        _attach(logger, logging.StreamHandler(sys.stderr), numeric_level, formatter)

    if enable_file and log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
        except OSError as e:
            logger.warning("Could not open log file %s: %s", log_file, e)
        else:
            _attach(logger, handler, numeric_level, formatter)

    return logger
