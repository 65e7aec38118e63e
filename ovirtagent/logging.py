"""Logging configuration for ovirtagent.

Library logging goes through loguru and is disabled by default. Applications
(and the CLI) enable it with a LogConfig:

    from ovirtagent.logging import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig(level="DEBUG", file="ovirtagent.log"))
    ...
    teardown_logging(handlers)

Each launch attempt additionally writes operator-facing progress lines to a
TaskLog, the line-oriented sink the host shows for that agent.
"""

from __future__ import annotations

import sys
import threading
from dataclasses import dataclass
from typing import Literal, TextIO

from loguru import logger

# Disable by default (library behavior)
logger.disable("ovirtagent")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration.

    Attributes:
        level: Minimum log level (DEBUG, INFO, WARNING, ERROR).
        file: Path to log file. If provided, logs are written to this file.
        console: Whether to log to stderr. Defaults to True.
        rotation: File rotation policy (e.g., "50 MB", "1 day").
        retention: Number of old log files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig) -> list[int]:
    """Enable ovirtagent logging and return handler IDs for cleanup."""
    logger.enable("ovirtagent")
    handler_ids: list[int] = []

    if config.console:
        hid = logger.add(
            sys.stderr,
            level=config.level,
            format=CONSOLE_FORMAT,
            colorize=True,
            filter="ovirtagent",
        )
        handler_ids.append(hid)

    if config.file:
        hid = logger.add(
            config.file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation=config.rotation,
            retention=config.retention,
            compression="zip",
            diagnose=False,  # Don't expose engine/SSH passwords in tracebacks
            enqueue=True,
            filter="ovirtagent",
        )
        handler_ids.append(hid)

    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("ovirtagent")


class TaskLog:
    """Line-oriented progress log for one agent launch.

    Lines go to loguru (bound with the agent name) and, when given, to a
    text stream the operator is watching.
    """

    def __init__(self, agent: str, stream: TextIO | None = None) -> None:
        self.agent = agent
        self._stream = stream
        self._log = logger.bind(component="launch", agent=agent)
        self._lock = threading.Lock()
        self._partial = b""

    def println(self, message: str) -> None:
        self._log.info(message)
        self._emit(message)

    def error(self, message: str) -> None:
        self._log.error(message)
        self._emit(f"ERROR: {message}")

    def _emit(self, line: str) -> None:
        if self._stream is None:
            return
        with self._lock:
            self._stream.write(line + "\n")
            self._stream.flush()

    def write(self, data: bytes) -> None:
        """Accept raw bytes (remote stderr) and emit them line by line."""
        with self._lock:
            buffered = self._partial + data
            *lines, self._partial = buffered.split(b"\n")
        for raw in lines:
            self.println(raw.decode(errors="replace").rstrip("\r"))

    def flush(self) -> None:
        with self._lock:
            rest, self._partial = self._partial, b""
        if rest:
            self.println(rest.decode(errors="replace").rstrip("\r"))


class NoCloseWriter:
    """Forwards writes to a TaskLog; close() detaches instead of closing it."""

    __slots__ = ("_out",)

    def __init__(self, out: TaskLog) -> None:
        self._out: TaskLog | None = out

    def write(self, data: bytes) -> None:
        if self._out is not None:
            self._out.write(data)

    def flush(self) -> None:
        if self._out is not None:
            self._out.flush()

    def close(self) -> None:
        if self._out is not None:
            self._out.flush()
        self._out = None

    @property
    def closed(self) -> bool:
        return self._out is None
