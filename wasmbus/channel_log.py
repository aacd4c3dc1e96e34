"""Logging for multi-threaded programs through a queue drained by one writer thread.

Records logged with the standard ``logging`` calls from any thread are turned
into :class:`LogRec` values and placed on a bounded queue. A receiver thread
takes them off the queue and writes them out.
"""

from __future__ import annotations

import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from typing import TextIO

MESSAGE_LIMIT = 50
"""Number of records that can be queued before a logging thread blocks."""

CLOSE_TOKEN = "<<<close>>>"
CLOSE_NUM = 0xFFFF_FFFF
NEWLINE = "\r\n"
LOG_LEVEL_ENV = "WASMBUS_LOG"
"""Environment variable that selects the initial log level."""

TRACE = 5
_OFF = logging.CRITICAL + 10

_LEVELS = {
    "off": _OFF,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": TRACE,
}

Receiver = queue.Queue
"""Receiving end of the logging channel."""

_state_lock = threading.Lock()
_installed: tuple[ChannelLogger, logging.Logger] | None = None

_width_lock = threading.Lock()
_max_width = 0


def _level_name(levelno: int) -> str:
    if levelno >= logging.ERROR:
        return "ERROR"
    if levelno >= logging.WARNING:
        return "WARN"
    if levelno >= logging.INFO:
        return "INFO"
    if levelno >= logging.DEBUG:
        return "DEBUG"
    return "TRACE"


def _max_target_width(target: str) -> int:
    global _max_width
    with _width_lock:
        if _max_width < len(target):
            _max_width = len(target)
        return _max_width


@dataclass(frozen=True)
class LogRec:
    """A log record that can be passed between threads."""

    level: str
    target: str
    args: str
    module_path: str | None = None
    file: str | None = None
    line: int | None = None

    @classmethod
    def from_record(cls, record: logging.LogRecord) -> LogRec:
        """Capture a standard log record."""
        return cls(
            level=_level_name(record.levelno),
            target=record.name,
            args=record.getMessage(),
            module_path=record.module,
            file=record.pathname,
            line=record.lineno,
        )

    def is_close_signal(self) -> bool:
        """Return True if this record tells the receiver to stop."""
        return self.line == CLOSE_NUM and self.file == CLOSE_TOKEN

    def format(self) -> str:
        """Return the printable line, including the line terminator.

        Targets are padded to the widest target seen so far so that
        consecutive lines align.
        """
        width = _max_target_width(self.target)
        return f" {self.level} {self.target:<{width}} > {self.args}{NEWLINE}"

    def __str__(self) -> str:
        return self.format()


_CLOSE_REC = LogRec(level="ERROR", target="", args="", file=CLOSE_TOKEN, line=CLOSE_NUM)


class ChannelLogger(logging.Handler):
    """Logging handler that sends every record into a queue."""

    def __init__(self, tx: queue.Queue) -> None:
        super().__init__()
        self.tx = tx

    def emit(self, record: logging.LogRecord) -> None:
        # a record shaped like the close signal must never be forwarded
        if record.lineno == CLOSE_NUM and record.pathname == CLOSE_TOKEN:
            return
        try:
            rec = LogRec.from_record(record)
        except Exception:
            self.handleError(record)
            return
        try:
            self.tx.put(rec)
        except Exception as exc:
            print(f"log send err: {exc!r}", file=sys.stderr)


def _level_from_env() -> tuple[str, int]:
    name = os.environ.get(LOG_LEVEL_ENV, "").strip().lower()
    if name in _LEVELS:
        return name.upper(), _LEVELS[name]
    return "INFO", logging.INFO


def init_logger(logger: logging.Logger | None = None) -> queue.Queue:
    """Route ``logger`` (the root logger by default) through a bounded queue.

    Returns the queue, to be handed to :func:`init_receiver` or drained by
    other code. Raises RuntimeError if logging was already initialized.
    """
    global _installed
    target = logging.getLogger() if logger is None else logger
    with _state_lock:
        if _installed is not None:
            raise RuntimeError("log instance init failure")
        rx: queue.Queue = queue.Queue(maxsize=MESSAGE_LIMIT)
        handler = ChannelLogger(rx)
        target.addHandler(handler)
        _installed = (handler, target)
    name, level = _level_from_env()
    print(f"Initializing logging at level {name}\r", file=sys.stderr)
    target.setLevel(level)
    return rx


def stop_receiver() -> None:
    """Send the close signal to the receiver thread."""
    with _state_lock:
        if _installed is None:
            raise RuntimeError("logger not initialized")
        handler = _installed[0]
    handler.tx.put(_CLOSE_REC)


def init_receiver(log_rx: queue.Queue, stream: TextIO | None = None) -> threading.Thread:
    """Start a daemon thread writing queued records to ``stream`` (stderr by default).

    The thread stops when it receives the close signal.
    """

    def run() -> None:
        while True:
            rec = log_rx.get()
            if rec.is_close_signal():
                break
            out = sys.stderr if stream is None else stream
            try:
                out.write(rec.format())
                out.flush()
            except (OSError, ValueError):
                pass

    thread = threading.Thread(target=run, name="wasmbus-log", daemon=True)
    thread.start()
    return thread


def _reset() -> None:
    """Detach the installed handler so logging can be initialized again."""
    global _installed
    with _state_lock:
        if _installed is not None:
            handler, target = _installed
            target.removeHandler(handler)
            _installed = None