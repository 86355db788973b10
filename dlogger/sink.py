"""Line sink that appends formatted entries to a daily log file."""
from __future__ import annotations

import contextvars
import itertools
import logging
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import SimpleQueue
from threading import Lock
from typing import Any, Iterator, Optional, Protocol, runtime_checkable

from rich.console import Console
from rich.logging import RichHandler
from rich.pretty import pretty_repr

from dlogger.core.config import get_settings
from dlogger.core.log import DailyFileHandler, get_logger

__all__ = [
    "LineSink",
    "Logger",
    "LoggerConfig",
    "NullSink",
    "bound_sink",
    "current_sink",
    "get_default_sink",
    "reset_default_sink",
    "use_sink",
]

LOGGER = get_logger(__name__)

LINE_FORMAT = "[%(asctime)s] %(message)s"
DATE_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
FILE_DATE_FORMAT = "%Y-%m-%d"
FILE_SUFFIX = ".txt"

_sink_ids = itertools.count()


@runtime_checkable
class LineSink(Protocol):
    """Anything that can persist a tagged log entry."""

    def write_entry(self, tag: str, payload: Any) -> None:
        ...


@dataclass(frozen=True)
class LoggerConfig:
    """Where and how a :class:`Logger` writes its lines."""

    local_path: Path = Path("log")
    console: bool = False
    queue: bool = False
    width: int = 100
    encoding: str = "utf-8"


class Logger:
    """Render objects and append them, timestamped, to ``<local_path>/<date>.txt``.

    Each instance owns an unregistered :mod:`logging` logger, so several sinks
    with different directories coexist without touching the logger registry.
    Handlers are built on the first write and closed by :meth:`close` or when
    the instance is garbage collected.
    """

    def __init__(self, config: Optional[LoggerConfig] = None) -> None:
        self.config = config or LoggerConfig()
        self._logger = logging.Logger(f"dlogger.lines.{next(_sink_ids)}", logging.INFO)
        self._logger.propagate = False
        self._listeners: list[QueueListener] = []
        self._lock = Lock()
        self._finalizer = weakref.finalize(self, _release, self._logger, self._listeners)

    def __repr__(self) -> str:
        return f"Logger(local_path={str(self.local_path)!r})"

    @property
    def local_path(self) -> Path:
        return Path(self.config.local_path)

    @property
    def log_file(self) -> Path:
        """Path of the file today's lines are appended to."""
        return self.local_path / f"{datetime.now().strftime(FILE_DATE_FORMAT)}{FILE_SUFFIX}"

    def _build_handlers(self) -> list[logging.Handler]:
        formatter = logging.Formatter(LINE_FORMAT, datefmt=DATE_TIME_FORMAT)
        file_handler = DailyFileHandler(
            self.local_path,
            encoding=self.config.encoding,
            date_format=FILE_DATE_FORMAT,
            suffix=FILE_SUFFIX,
        )
        file_handler.setFormatter(formatter)
        handlers: list[logging.Handler] = [file_handler]

        if self.config.console:
            console_handler = RichHandler(
                console=Console(),
                show_level=False,
                show_path=False,
                markup=False,
                log_time_format=DATE_TIME_FORMAT,
            )
            handlers.append(console_handler)
        return handlers

    def _ensure_handlers(self) -> None:
        with self._lock:
            if self._logger.handlers:
                return
            handlers = self._build_handlers()
            if self.config.queue:
                line_queue: SimpleQueue = SimpleQueue()
                self._logger.addHandler(QueueHandler(line_queue))
                listener = QueueListener(line_queue, *handlers)
                listener.start()
                self._listeners.append(listener)
            else:
                for handler in handlers:
                    self._logger.addHandler(handler)
        LOGGER.debug("Opened line sink at %s (queue=%s)", self.local_path, self.config.queue)

    def render(self, obj: Any, pretext: str | None = None) -> str:
        text = pretty_repr(obj, max_width=self.config.width)
        if pretext:
            return f"{pretext}: {text}"
        return text

    def log(self, obj: Any, pretext: str | None = None) -> None:
        """Log the rendered representation of ``obj``.

        Args:
            obj: the object to log; nested structures are rendered in full.
            pretext: text shown before the object, to describe it.
        """
        line = self.render(obj, pretext)
        self._ensure_handlers()
        self._logger.info(line)

    def write_entry(self, tag: str, payload: Any) -> None:
        """Best-effort :meth:`log`; failures are reported, never raised."""
        try:
            self.log(payload, tag)
        except Exception:
            LOGGER.warning("Failed to write log entry %r to %s", tag, self.local_path, exc_info=True)

    def close(self) -> None:
        """Stop the queue listener (if any) and close every handler."""
        with self._lock:
            _release(self._logger, self._listeners)


def _release(logger: logging.Logger, listeners: list[QueueListener]) -> None:
    handlers = list(logger.handlers)
    while listeners:
        listener = listeners.pop()
        listener.stop()
        handlers.extend(listener.handlers)
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()


class NullSink:
    """Sink that drops every entry."""

    def write_entry(self, tag: str, payload: Any) -> None:
        return None


_active_sink: contextvars.ContextVar[LineSink | None] = contextvars.ContextVar(
    "dlogger_sink", default=None
)


@lru_cache(maxsize=1)
def _build_default_sink() -> Logger:
    return Logger(get_settings().logger_config())


def get_default_sink() -> LineSink:
    """Return the process-wide sink built from :func:`get_settings`.

    Invalid settings never reach the caller: they are reported and a
    :class:`NullSink` is returned until the configuration is fixed.
    """

    try:
        return _build_default_sink()
    except Exception:
        LOGGER.warning("Could not build the default sink, dropping entries", exc_info=True)
        return NullSink()


def reset_default_sink() -> None:
    """Close and forget the default sink, intended for tests."""

    if _build_default_sink.cache_info().currsize:
        _build_default_sink().close()
    _build_default_sink.cache_clear()


def bound_sink() -> LineSink | None:
    """Return the sink bound with :func:`use_sink`, if any."""

    return _active_sink.get()


def current_sink() -> LineSink:
    """Return the sink bound with :func:`use_sink`, or the default sink."""

    sink = bound_sink()
    return sink if sink is not None else get_default_sink()


@contextmanager
def use_sink(sink: LineSink) -> Iterator[LineSink]:
    """Route interceptor output to ``sink`` for the duration of the block."""

    token = _active_sink.set(sink)
    try:
        yield sink
    finally:
        _active_sink.reset(token)
