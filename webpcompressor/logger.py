"""Structured key=value logging, plus progress and operation helpers."""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, TextIO

from webpcompressor.config import LoggingConfig

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVEL_NAMES = {
    logging.DEBUG: "DEBUG",
    logging.INFO: "INFO",
    logging.WARNING: "WARN",
    logging.ERROR: "ERROR",
}


def format_duration(seconds: float) -> str:
    """Render a duration in seconds with a short unit suffix."""
    if seconds == 0:
        return "0s"
    magnitude = abs(seconds)
    if magnitude < 1e-6:
        return f"{seconds * 1e9:.0f}ns"
    if magnitude < 1e-3:
        return f"{seconds * 1e6:g}µs"
    if magnitude < 1:
        return f"{seconds * 1e3:g}ms"
    return f"{seconds:g}s"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, timedelta):
        return format_duration(value.total_seconds())
    if value is None:
        return "<nil>"
    return str(value)


def _quote(text: str) -> str:
    if text == "" or any(ch in text for ch in ' ="') or not text.isprintable():
        return json.dumps(text, ensure_ascii=False)
    return text


@dataclass
class _Sink:
    stream: TextIO
    lock: threading.Lock = field(default_factory=threading.Lock)

    def write(self, line: str) -> None:
        with self.lock:
            self.stream.write(line + "\n")
            self.stream.flush()


class Logger:
    """Writes one key=value line per record to a text stream."""

    def __init__(
        self,
        stream: TextIO | None = None,
        level: int = logging.INFO,
        *,
        fields: Mapping[str, Any] | None = None,
        _sink: _Sink | None = None,
    ) -> None:
        self._sink = _sink if _sink is not None else _Sink(stream if stream is not None else sys.stdout)
        self.level = level
        self.fields: dict[str, Any] = dict(fields) if fields else {}

    def _log(self, level: int, msg: str, extra: Mapping[str, Any]) -> None:
        if level < self.level:
            return
        parts = [
            f"time={_quote(time.strftime(_TIME_FORMAT))}",
            f"level={_LEVEL_NAMES.get(level, 'INFO')}",
            f"msg={_quote(msg)}",
        ]
        for key, value in {**self.fields, **extra}.items():
            parts.append(f"{key}={_quote(_format_value(value))}")
        self._sink.write(" ".join(parts))

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log at debug level."""
        self._log(logging.DEBUG, msg, kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log at info level."""
        self._log(logging.INFO, msg, kwargs)

    def warn(self, msg: str, **kwargs: Any) -> None:
        """Log at warning level."""
        self._log(logging.WARNING, msg, kwargs)

    def error(self, msg: str, **kwargs: Any) -> None:
        """Log at error level."""
        self._log(logging.ERROR, msg, kwargs)

    def fatal(self, msg: str, **kwargs: Any) -> None:
        """Log at error level and exit with status 1."""
        self._log(logging.ERROR, msg, kwargs)
        raise SystemExit(1)

    def bind(self, **kwargs: Any) -> Logger:
        """Return a logger that adds the given fields to every record."""
        return Logger(level=self.level, fields={**self.fields, **kwargs}, _sink=self._sink)

    def with_error(self, err: BaseException) -> Logger:
        """Return a logger carrying an error field."""
        return self.bind(error=str(err))

    def with_context(self, ctx: Mapping[str, Any]) -> Logger:
        """Return a logger carrying all entries of ctx as fields."""
        return self.bind(**ctx)


def parse_log_level(level: str) -> int:
    """Map a level name to a logging level; unknown names give INFO."""
    return {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warn": logging.WARNING,
        "warning": logging.WARNING,
        "error": logging.ERROR,
    }.get(level.lower(), logging.INFO)


def create_logger(cfg: LoggingConfig) -> Logger:
    """Build a logger from configuration; raises OSError if the log file cannot be opened."""
    level = parse_log_level(cfg.level)
    if not cfg.output_file:
        return Logger(sys.stdout, level)
    try:
        directory = os.path.dirname(cfg.output_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        stream = open(cfg.output_file, "a", encoding="utf-8")  # noqa: SIM115 - lives as long as the logger
    except OSError as exc:
        raise OSError(f"打开日志文件失败: {exc}") from exc
    return Logger(stream, level)


def default_logger() -> Logger:
    """A logger writing info and above to standard output."""
    return Logger(sys.stdout, logging.INFO)


class ProgressLogger:
    """Logs progress of a counted task."""

    def __init__(self, logger: Logger, total: int, prefix: str) -> None:
        self.logger = logger
        self.total = total
        self.prefix = prefix
        self.current = 0

    def update(self, current: int) -> None:
        """Record and log the current position."""
        self.current = current
        if self.total:
            percentage = current / self.total * 100
        else:
            percentage = float("nan") if current == 0 else float("inf")
        self.logger.info(
            f"{self.prefix}进度",
            current=current,
            total=self.total,
            percentage=f"{percentage:.1f}%",
        )

    def increment(self) -> None:
        """Advance by one and log."""
        self.update(self.current + 1)

    def finish(self) -> None:
        """Log completion."""
        self.logger.info(f"{self.prefix}完成", total=self.total)


class OperationLogger:
    """Logs the start, success or failure of a named operation with its duration."""

    def __init__(self, logger: Logger, operation: str) -> None:
        self.logger = logger
        self.operation = operation
        self.start_time = time.monotonic()
        self.context: dict[str, Any] = {}

    def with_context(self, key: str, value: Any) -> OperationLogger:
        """Attach a context entry and return this logger."""
        self.context[key] = value
        return self

    def _elapsed(self) -> str:
        return format_duration(time.monotonic() - self.start_time)

    def start(self) -> None:
        """Log the start of the operation."""
        self.logger.with_context(self.context).info(f"开始{self.operation}")

    def success(self) -> None:
        """Log successful completion with the elapsed time."""
        ctx = {**self.context, "duration": self._elapsed()}
        self.logger.with_context(ctx).info(f"完成{self.operation}")

    def error(self, err: BaseException) -> None:
        """Log failure with the elapsed time and the error."""
        ctx = {**self.context, "duration": self._elapsed(), "error": str(err)}
        self.logger.with_context(ctx).error(f"失败{self.operation}")