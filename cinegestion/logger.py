"""Append-only event log with levels and timestamped lines."""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from os import PathLike
from typing import TextIO

_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(IntEnum):
    """Severity levels, lowest first."""

    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4

    @classmethod
    def from_string(cls, name: str | None) -> LogLevel:
        """Parse a level name; unknown or missing names give INFO."""
        if name is None:
            return cls.INFO
        try:
            return cls[name]
        except KeyError:
            return cls.INFO

    def __str__(self) -> str:
        return self.name


class EventLog:
    """A log file opened for appending; lines below ``min_level`` are dropped."""

    def __init__(
        self, path: str | PathLike[str], min_level: LogLevel = LogLevel.INFO
    ) -> None:
        self._file: TextIO | None = open(path, "a", encoding="utf-8")
        self.min_level = LogLevel(min_level)
        self.info("Sistema de logging inicializado")

    @property
    def closed(self) -> bool:
        return self._file is None

    def log(self, level: LogLevel, text: str, *args: object) -> None:
        """Write one line, printf-style formatted with ``args``."""
        if self._file is None or level < self.min_level:
            return
        stamp = datetime.now().strftime(_TIME_FORMAT)
        body = text % args if args else text
        self._file.write(f"[{stamp}] [{LogLevel(level)}] {body}\n")
        self._file.flush()

    def debug(self, text: str, *args: object) -> None:
        self.log(LogLevel.DEBUG, text, *args)

    def info(self, text: str, *args: object) -> None:
        self.log(LogLevel.INFO, text, *args)

    def warning(self, text: str, *args: object) -> None:
        self.log(LogLevel.WARNING, text, *args)

    def error(self, text: str, *args: object) -> None:
        self.log(LogLevel.ERROR, text, *args)

    def critical(self, text: str, *args: object) -> None:
        self.log(LogLevel.CRITICAL, text, *args)

    def close(self) -> None:
        if self._file is None:
            return
        self.info("Sistema de logging cerrado")
        self._file.close()
        self._file = None

    def __enter__(self) -> EventLog:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()