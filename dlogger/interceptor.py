"""Call interception: log arguments, return values and errors of a callable.

The wrapped callable keeps its calling contract. Plain values and exceptions
are logged and passed through on the spot. Futures get a done callback and
are handed back untouched; coroutines and other awaitables are handed back
as an observer coroutine that logs once the caller awaits it.
"""
from __future__ import annotations

import asyncio
import concurrent.futures
import functools
import inspect
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional, Sequence, TypeVar

from dlogger.core.log import get_logger
from dlogger.projection import flatten_fields, project
from dlogger.sink import LineSink, current_sink

__all__ = ["NO_RECEIVER", "intercept", "invoke", "is_future", "observe"]

LOGGER = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

ARGUMENTS = "arguments"
RETURN = "return"
ERROR_MESSAGE = "error message"

NO_RECEIVER = object()


def tag(source: str, suffix: str) -> str:
    return f"({source}) {suffix}"


def error_message(error: BaseException) -> str:
    return str(error)


def logged_arguments(
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
    fields: Sequence[str],
) -> list[Any]:
    """Return the argument list as it should appear in the log."""
    if fields:
        values = [project(arg, fields) for arg in args]
        named = {name: project(value, fields) for name, value in kwargs.items()}
    else:
        values = list(args)
        named = dict(kwargs)
    if named:
        values.append(named)
    return values


def is_future(value: Any) -> bool:
    """True for asyncio and concurrent.futures futures."""
    return asyncio.isfuture(value) or isinstance(value, concurrent.futures.Future)


def emit(sink: LineSink, entry_tag: str, payload: Any) -> None:
    try:
        sink.write_entry(entry_tag, payload)
    except Exception:
        LOGGER.warning("Sink %r failed to write %r", sink, entry_tag, exc_info=True)


def _future_observer(sink: LineSink, source: str) -> Callable[[Any], None]:
    def _on_done(future: Any) -> None:
        if future.cancelled():
            emit(sink, tag(source, ERROR_MESSAGE), "cancelled")
            return
        error = future.exception()
        if error is not None:
            emit(sink, tag(source, ERROR_MESSAGE), error_message(error))
        else:
            emit(sink, tag(source, RETURN), future.result())

    return _on_done


async def _await_and_log(awaitable: Awaitable[Any], sink: LineSink, source: str) -> Any:
    try:
        value = await awaitable
    except asyncio.CancelledError:
        emit(sink, tag(source, ERROR_MESSAGE), "cancelled")
        raise
    except Exception as error:
        emit(sink, tag(source, ERROR_MESSAGE), error_message(error))
        raise
    emit(sink, tag(source, RETURN), value)
    return value


def observe(result: Any, sink: LineSink, source: str) -> Any:
    """Log the outcome of ``result`` without waiting for it.

    Futures are returned as-is with a done callback attached; other awaitables
    are returned as a coroutine that logs after the original settles. Plain
    values are logged immediately.
    """
    if is_future(result):
        result.add_done_callback(_future_observer(sink, source))
        return result
    if inspect.isawaitable(result):
        return _await_and_log(result, sink, source)
    emit(sink, tag(source, RETURN), result)
    return result


def invoke(
    func: Callable[..., Any],
    source: str,
    fields: Sequence[str],
    sink: LineSink,
    receiver: Any,
    args: Sequence[Any],
    kwargs: Mapping[str, Any],
) -> Any:
    """Call ``func`` and log the call through ``sink``.

    ``receiver``, when not :data:`NO_RECEIVER`, is passed as the first
    positional argument but left out of the logged arguments.
    """
    try:
        arguments = logged_arguments(args, kwargs, fields)
    except Exception:
        LOGGER.warning("Could not project arguments of %s", source, exc_info=True)
        arguments = logged_arguments(args, kwargs, ())
    emit(sink, tag(source, ARGUMENTS), arguments)

    try:
        if receiver is NO_RECEIVER:
            result = func(*args, **kwargs)
        else:
            result = func(receiver, *args, **kwargs)
    except Exception as error:
        emit(sink, tag(source, ERROR_MESSAGE), error_message(error))
        raise

    return observe(result, sink, source)


def intercept(
    func: F,
    source: Optional[str] = None,
    fields: Iterable[str] = (),
    *,
    sink: Optional[LineSink] = None,
) -> F:
    """Wrap ``func`` so every call is logged.

    Args:
        func: the callable to wrap.
        source: label used in tags, ``"<Owner>.<method>"`` by convention;
            defaults to ``func.__qualname__``.
        fields: dotted field paths; when given, structured arguments are
            projected onto them before logging.
        sink: where entries go; resolved per call with
            :func:`~dlogger.sink.current_sink` when omitted.

    The returned function is a plain function, so assigning it on a class
    keeps the usual method binding.
    Before Python 3.12 a wrapped coroutine function is not reported by
    :func:`inspect.iscoroutinefunction`, although calling it still returns
    an awaitable.
    """
    label = source or getattr(func, "__qualname__", None) or repr(func)
    paths = flatten_fields((fields,) if isinstance(fields, str) else fields)

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        target = sink if sink is not None else current_sink()
        return invoke(func, label, paths, target, NO_RECEIVER, args, kwargs)

    if inspect.iscoroutinefunction(func) and hasattr(inspect, "markcoroutinefunction"):
        inspect.markcoroutinefunction(wrapper)
    LOGGER.debug("Intercepting %s (fields=%s)", label, paths or "all")
    return wrapper  # type: ignore[return-value]
