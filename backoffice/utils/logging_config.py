"""Logging setup for the HTTP app and the maintenance CLI."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Emit one JSON object per record, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _build_formatter(fmt: str | None) -> logging.Formatter:
    if (fmt or "").lower() == "json":
        return JsonFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=DATE_FORMAT)


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level or "INFO").upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logging(app) -> None:
    level = _resolve_level(app.config.get("LOG_LEVEL"))
    formatter = _build_formatter(app.config.get("LOG_FORMAT"))

    app.logger.handlers.clear()
    app.logger.setLevel(level)
    app.logger.propagate = False

    if app.config.get("ENABLE_CONSOLE_LOGGING", True):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        app.logger.addHandler(console_handler)

    if app.config.get("ENABLE_FILE_LOGGING", False):
        log_dir = app.config.get("LOG_DIR") or "logs"
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, f"{app.config.get('APP_NAME', 'backoffice')}.log"),
            maxBytes=int(app.config.get("LOG_FILE_MAX_BYTES", 10 * 1024 * 1024)),
            backupCount=int(app.config.get("LOG_FILE_BACKUP_COUNT", 5)),
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        app.logger.addHandler(file_handler)

    # Pipeline modules log under the package logger; route them through the app handlers.
    if app.logger.handlers:
        package_logger = logging.getLogger("backoffice")
        package_logger.handlers = list(app.logger.handlers)
        package_logger.setLevel(level)
        package_logger.propagate = False

    app.logger.debug("Logging configured (level=%s)", logging.getLevelName(level))


def configure_cli_logging(level: str | int | None = "INFO", fmt: str | None = "text") -> None:
    root = logging.getLogger()
    for existing in [h for h in root.handlers if getattr(h, "_backoffice_cli", False)]:
        root.removeHandler(existing)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_build_formatter(fmt))
    handler._backoffice_cli = True
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))
    for noisy in ("google", "urllib3", "grpc"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
