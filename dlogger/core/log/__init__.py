"""Diagnostics logging for the package itself, with rich console output."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime
from logging.handlers import QueueHandler, QueueListener
from pathlib import Path
from queue import SimpleQueue
from threading import RLock
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.traceback import install as install_rich_traceback

__all__ = [
    "DailyFileHandler",
    "LoggingConfig",
    "init_logging",
    "get_logger",
    "set_level",
    "shutdown_logging",
]


@dataclass
class LoggingConfig:
    """Runtime configuration for the diagnostics logging subsystem."""

    app_name: str = "dlogger"
    level: str | int = "WARNING"
    log_dir: Optional[Path] = None
    console: bool = True
    rich_tracebacks: bool = False
    queue: bool = False


_config_lock = RLock()
_config: LoggingConfig | None = None
_listener: QueueListener | None = None
_queue: SimpleQueue | None = None


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).upper(), logging.INFO)


class DailyFileHandler(logging.FileHandler):
    """Logging handler that writes to a single log file per day.

    The directory is created lazily on the first emitted record, so building
    a handler for a sink that never writes leaves the filesystem untouched.
    Errors while opening or writing are reported through :meth:`handleError`
    and never leave :meth:`emit`, which keeps queue listener threads alive.
    """

    def __init__(
        self,
        directory: Path,
        *,
        encoding: str = "utf-8",
        date_format: str = "%Y_%m_%d",
        suffix: str = ".log",
    ) -> None:
        self.directory = Path(directory)
        self.date_format = date_format
        self.suffix = suffix
        self._current_date: date = datetime.now().date()
        super().__init__(
            self._path_for_date(self._current_date),
            mode="a",
            encoding=encoding,
            delay=True,
        )

    def _path_for_date(self, target_date: date) -> Path:
        return self.directory / f"{target_date.strftime(self.date_format)}{self.suffix}"

    @property
    def current_path(self) -> Path:
        return self._path_for_date(datetime.now().date())

    def _switch_file(self) -> None:
        if self.stream:
            try:
                self.stream.flush()
            finally:
                self.stream.close()
            self.stream = None
        self.baseFilename = os.fspath(self._path_for_date(self._current_date))
        self.stream = self._open()

    def _open(self):
        self.directory.mkdir(parents=True, exist_ok=True)
        return super()._open()

    def emit(self, record: logging.LogRecord) -> None:
        # A failed open leaves the stream unset, so the next record retries it.
        try:
            record_date = datetime.fromtimestamp(record.created).date()
            if record_date != self._current_date:
                self._current_date = record_date
                self._switch_file()
            super().emit(record)
        except Exception:
            self.handleError(record)


def _build_handlers(cfg: LoggingConfig, level: int) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []

    if cfg.rich_tracebacks:
        install_rich_traceback(show_locals=False)

    if cfg.console:
        rich_handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=cfg.rich_tracebacks,
            show_level=True,
            show_path=False,
            markup=False,
            log_time_format="%Y-%m-%d %H:%M:%S",
        )
        rich_handler.setLevel(level)
        handlers.append(rich_handler)

    if cfg.log_dir:
        file_handler = DailyFileHandler(Path(cfg.log_dir))
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        handlers.append(file_handler)

    return handlers


def init_logging(**kwargs: object) -> None:
    """Initialise diagnostics logging for the ``dlogger`` logger tree.

    The function is idempotent; repeated calls reuse the existing configuration
    unless explicit keyword arguments request a different log level or other
    options.
    """

    with _config_lock:
        global _config, _listener, _queue

        cfg = LoggingConfig()
        for key, value in kwargs.items():
            if hasattr(cfg, key):
                setattr(cfg, key, value)  # type: ignore[arg-type]

        if _config is not None:
            if _config == cfg:
                return
            _teardown_locked()
        level = _parse_level(cfg.level)

        package_logger = logging.getLogger(cfg.app_name)
        package_logger.setLevel(level)
        package_logger.propagate = False
        for handler in list(package_logger.handlers):
            package_logger.removeHandler(handler)

        handlers = _build_handlers(cfg, level)

        if cfg.queue and handlers:
            log_queue: SimpleQueue = SimpleQueue()
            queue_handler = QueueHandler(log_queue)
            queue_handler.setLevel(level)
            package_logger.addHandler(queue_handler)
            listener = QueueListener(log_queue, *handlers, respect_handler_level=True)
            listener.start()
            _queue = log_queue
            _listener = listener
        else:
            for handler in handlers:
                package_logger.addHandler(handler)

        _config = cfg


def _teardown_locked() -> None:
    global _listener, _queue, _config
    if _listener:
        _listener.stop()
        for handler in _listener.handlers:
            handler.close()
    app_name = _config.app_name if _config else LoggingConfig.app_name
    _listener = None
    _queue = None
    _config = None
    package_logger = logging.getLogger(app_name)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)


def shutdown_logging() -> None:
    """Tear down handlers and queue listeners, intended for tests."""

    with _config_lock:
        _teardown_locked()


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger inside the package tree without initialising handlers."""
    cfg = _config or LoggingConfig()
    if not name:
        return logging.getLogger(cfg.app_name)
    return logging.getLogger(name)


def set_level(level: str | int) -> None:
    new_level = _parse_level(level)
    cfg = _config or LoggingConfig()
    package_logger = logging.getLogger(cfg.app_name)
    package_logger.setLevel(new_level)
    for handler in package_logger.handlers:
        handler.setLevel(new_level)
