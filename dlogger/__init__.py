"""Method call logging: arguments, return values and errors to a daily log file."""

from .core import Settings, get_logger, get_settings
from .decorators import log, logged
from .interceptor import intercept
from .projection import MISSING, project
from .sink import LineSink, Logger, LoggerConfig, NullSink, current_sink, get_default_sink, use_sink

__all__ = [
    "MISSING",
    "LineSink",
    "Logger",
    "LoggerConfig",
    "NullSink",
    "Settings",
    "current_sink",
    "get_default_sink",
    "get_logger",
    "get_settings",
    "intercept",
    "log",
    "logged",
    "project",
    "use_sink",
]
