"""
Structured JSON Logging.

Every record is emitted as one JSON object per line.  Services attach
lifecycle context through ``extra`` (``event``, ``identity_id``,
``user_id``); those keys are lifted to the top level of the record so a
log query such as ``event == "REAP_PARTIAL"`` needs no nesting.  Any other
``extra`` keys land under ``"extra"``.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional, TextIO

# Context keys promoted to top-level fields of the JSON record.
PROMOTED_FIELDS: tuple[str, ...] = ("event", "identity_id", "user_id")

_RESERVED_ATTRS: frozenset[str] = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class JSONFormatter(logging.Formatter):
    """Render a ``LogRecord`` as a single-line JSON document."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger_name": record.name,
            "message": record.getMessage(),
        }

        context = {
            key: value for key, value in vars(record).items() if key not in _RESERVED_ATTRS
        }
        for key in PROMOTED_FIELDS:
            if key in context:
                entry[key] = str(context.pop(key))
        if context:
            entry["extra"] = {key: str(value) for key, value in context.items()}

        if record.exc_info:
            entry["exception"] = record.exc_text or self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False)


class StructuredLogger:
    """Injectable wrapper around a named ``logging.Logger``.

    Handlers are attached once per logger name: a console handler and,
    when the file is writable, a size-rotated log file.  Level, file and
    rotation default to the values in :class:`samvaad.config.AppConfig`.

    Usage::

        log = StructuredLogger(name="samvaad.watcher")
        log.info("Watch started", extra={"event": "WATCH_START", "identity_id": uid})
    """

    def __init__(
        self,
        name: str = "samvaad",
        level: Optional[int] = None,
        stream: Optional[TextIO] = None,
        log_file: Optional[str] = None,
        max_bytes: Optional[int] = None,
        backup_count: Optional[int] = None,
    ) -> None:
        # Imported here: config itself logs through the stdlib at import time.
        from samvaad.config import get_config
        cfg = get_config()

        resolved_level: int = level if level is not None else logging.getLevelName(cfg.LOG_LEVEL.upper())
        if not isinstance(resolved_level, int):
            resolved_level = logging.INFO

        self._logger: logging.Logger = logging.getLogger(name)
        self._logger.setLevel(resolved_level)
        if self._logger.handlers:
            return

        formatter = JSONFormatter()
        console = logging.StreamHandler(stream or sys.stdout)
        console.setFormatter(formatter)
        self._logger.addHandler(console)

        path = Path(log_file or cfg.LOG_FILE)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            rotating = RotatingFileHandler(
                filename=str(path),
                maxBytes=max_bytes if max_bytes is not None else cfg.LOG_MAX_BYTES,
                backupCount=backup_count if backup_count is not None else cfg.LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
        except OSError as exc:
            self._logger.warning(
                "Log file %s unavailable (%s); logging to console only.", path, exc,
            )
        else:
            rotating.setFormatter(formatter)
            self._logger.addHandler(rotating)

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def debug(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **kwargs)

    def critical(self, msg: str, *args: object, **kwargs: Any) -> None:
        self._logger.critical(msg, *args, **kwargs)


def get_logger(name: str = "samvaad") -> StructuredLogger:
    return StructuredLogger(name=name)
