"""Method and class decorators built on the call interceptor."""
from __future__ import annotations

import functools
import inspect
from typing import Any, Callable, Optional

from dlogger.core.config import get_settings
from dlogger.core.log import get_logger
from dlogger.interceptor import NO_RECEIVER, invoke
from dlogger.projection import flatten_fields
from dlogger.sink import LineSink, Logger, NullSink, bound_sink, get_default_sink

__all__ = ["SINK_ATTRIBUTE", "LoggedMethod", "log", "logged", "resolve_sink"]

LOGGER = get_logger(__name__)

SINK_ATTRIBUTE = "__dlogger_sink__"


def resolve_sink(host: Any, explicit: Optional[LineSink] = None) -> LineSink:
    """Pick the sink for one call: explicit, then ``use_sink``, then the class, then the default."""
    if explicit is not None:
        return explicit
    sink = bound_sink()
    if sink is not None:
        return sink
    if host is not None:
        try:
            sink = getattr(host, SINK_ATTRIBUTE, None)
        except Exception:
            LOGGER.warning("Could not resolve the sink of %r", host, exc_info=True)
            sink = None
        if sink is not None:
            return sink
    return get_default_sink()


def _signature_without_receiver(func: Callable[..., Any]) -> inspect.Signature | None:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return None
    parameters = list(signature.parameters.values())
    if not parameters or parameters[0].kind not in (
        inspect.Parameter.POSITIONAL_ONLY,
        inspect.Parameter.POSITIONAL_OR_KEYWORD,
    ):
        return signature
    return signature.replace(parameters=parameters[1:])


class LoggedMethod:
    """Descriptor that logs every call of the wrapped method.

    The tag source is ``"<Owner>.<method>"``, taken from the class the
    descriptor is assigned in. Stacking above ``staticmethod`` or
    ``classmethod`` is supported.
    Bound methods report their signature without the receiver. Async
    methods are marked as coroutine functions on Python 3.12 and later;
    earlier interpreters see a plain function that returns a coroutine.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        fields: tuple[str, ...] = (),
        sink: Optional[LineSink] = None,
    ) -> None:
        self._kind: type | None = None
        if isinstance(func, (staticmethod, classmethod)):
            self._kind = type(func)
            func = func.__func__
        if not callable(func):
            raise TypeError(f"log() expects a callable, got {type(func).__name__}.")
        self.__func__ = func
        self.fields = fields
        self.sink = sink
        self.source: str = getattr(func, "__qualname__", None) or repr(func)
        functools.update_wrapper(self, func)

    def __set_name__(self, owner: type, name: str) -> None:
        self.source = f"{owner.__name__}.{name}"

    def __get__(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        if owner is None:
            owner = type(instance)
        if self._kind is classmethod:
            return self._bind(owner, owner)
        if self._kind is staticmethod or instance is None:
            return self._bind(owner, NO_RECEIVER)
        return self._bind(instance, instance)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._call(None, NO_RECEIVER, args, kwargs)

    def _bind(self, host: Any, receiver: Any) -> Callable[..., Any]:
        @functools.wraps(self.__func__)
        def bound(*args: Any, **kwargs: Any) -> Any:
            return self._call(host, receiver, args, kwargs)

        if receiver is not NO_RECEIVER:
            signature = _signature_without_receiver(self.__func__)
            if signature is not None:
                bound.__signature__ = signature  # type: ignore[attr-defined]
        # inspect.markcoroutinefunction only exists from Python 3.12
        if inspect.iscoroutinefunction(self.__func__) and hasattr(inspect, "markcoroutinefunction"):
            inspect.markcoroutinefunction(bound)
        return bound

    def _call(self, host: Any, receiver: Any, args: tuple, kwargs: dict) -> Any:
        sink = resolve_sink(host, self.sink)
        return invoke(self.__func__, self.source, self.fields, sink, receiver, args, kwargs)


def log(*fields: Any, sink: Optional[LineSink] = None) -> Any:
    """Log all method arguments, the return value and raised errors.

    Usable bare (``@log``) or with field paths (``@log("amount", "user.id")``
    or ``@log(["amount", "user.id"])``). When field paths are given, every
    structured argument is reduced to those fields before it is logged.
    """
    if len(fields) == 1 and (callable(fields[0]) or isinstance(fields[0], (staticmethod, classmethod))):
        return LoggedMethod(fields[0], sink=sink)

    paths = flatten_fields(fields)

    def decorator(func: Callable[..., Any]) -> LoggedMethod:
        return LoggedMethod(func, paths, sink)

    return decorator


class _DirectorySink:
    """Class attribute that builds the class's :class:`Logger` on first use."""

    def __init__(self, directory: str) -> None:
        self.directory = directory
        self._sink: Logger | None = None

    def __get__(self, instance: Any, owner: type | None = None) -> LineSink:
        if self._sink is None:
            try:
                self._sink = Logger(get_settings().logger_config(self.directory))
            except Exception:
                LOGGER.warning(
                    "Could not build the sink for %r, dropping entries", self.directory, exc_info=True
                )
                return NullSink()
        return self._sink


def logged(directory: Any = None) -> Any:
    """Put every ``@log`` entry of the decorated class into a sub directory.

    The sub directory sits under the configured log directory and defaults
    to the class name. Usable bare (``@logged``) or called
    (``@logged("payments")``).
    """
    if isinstance(directory, type):
        return logged()(directory)

    def decorator(cls: type) -> type:
        setattr(cls, SINK_ATTRIBUTE, _DirectorySink(directory or cls.__name__))
        return cls

    return decorator
