"""Tests for the daily file line sink."""
from __future__ import annotations

from datetime import datetime
import gc
import logging
from pathlib import Path
import re
import sys
import time

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from dlogger.core.log import DailyFileHandler
from dlogger.projection import MISSING
from dlogger.sink import LineSink, Logger, LoggerConfig, current_sink, use_sink

LINE = re.compile(r"^\[\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\] (?P<text>.*)$")


def _today_file(directory: Path) -> Path:
    return directory / f"{datetime.now():%Y-%m-%d}.txt"


def _lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


def test_logger_appends_timestamped_lines_to_todays_file(tmp_path: Path) -> None:
    sink = Logger(LoggerConfig(local_path=tmp_path))

    sink.write_entry("(Account.withdraw) return", True)
    sink.log({"amount": 50})
    sink.close()

    lines = _lines(_today_file(tmp_path))
    assert [LINE.match(line).group("text") for line in lines] == [
        "(Account.withdraw) return: True",
        "{'amount': 50}",
    ]


def test_logger_creates_nested_directory_on_first_write(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "er" / "logs"
    sink = Logger(LoggerConfig(local_path=target))

    assert not target.exists()
    sink.log("hello", "greeting")
    sink.close()

    assert sink.log_file == _today_file(target)
    assert sink.log_file.exists()


def test_logger_renders_nested_values_in_full(tmp_path: Path) -> None:
    sink = Logger(LoggerConfig(local_path=tmp_path))

    sink.log({"a": {"b": {"c": {"d": {"e": 1}}}}, "gone": MISSING}, "(Tree.walk) arguments")
    sink.close()

    text = _today_file(tmp_path).read_text(encoding="utf-8")
    assert "'e': 1" in text
    assert "<missing>" in text


def test_unwritable_directory_is_reported_and_retried(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    sink = Logger(LoggerConfig(local_path=blocker))

    sink.write_entry("(Disk.write) return", 1)
    assert "Logging error" in capsys.readouterr().err

    blocker.unlink()
    sink.write_entry("(Disk.write) return", 2)
    sink.close()

    texts = [LINE.match(line).group("text") for line in _lines(_today_file(blocker))]
    assert texts == ["(Disk.write) return: 2"]


def test_queued_logger_survives_an_unwritable_directory(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("", encoding="utf-8")
    sink = Logger(LoggerConfig(local_path=blocker, queue=True))

    sink.write_entry("(Disk.write) return", 1)
    errors = ""
    deadline = time.monotonic() + 5
    while "Logging error" not in errors and time.monotonic() < deadline:
        time.sleep(0.01)
        errors += capsys.readouterr().err
    assert "Logging error" in errors

    blocker.unlink()
    sink.write_entry("(Disk.write) return", 2)
    sink.close()

    texts = [LINE.match(line).group("text") for line in _lines(_today_file(blocker))]
    assert texts == ["(Disk.write) return: 2"]


def test_write_entry_reports_render_failures_instead_of_raising(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    sink = Logger(LoggerConfig(local_path=tmp_path))

    def broken_render(obj: object, pretext: str | None = None) -> str:
        raise RuntimeError("cannot render")

    monkeypatch.setattr(sink, "render", broken_render)
    with caplog.at_level(logging.WARNING, logger="dlogger.sink"):
        sink.write_entry("(Disk.write) return", 1)
    sink.close()

    assert "Failed to write log entry" in caplog.text


def test_dropped_loggers_release_their_files(tmp_path: Path) -> None:
    handlers: list[logging.Handler] = []
    for index in range(50):
        sink = Logger(LoggerConfig(local_path=tmp_path / str(index)))
        sink.log(index, "item")
        handlers.extend(sink._logger.handlers)
        del sink
    gc.collect()

    assert len(handlers) == 50
    assert all(handler.stream is None for handler in handlers)
    assert not [name for name in logging.Logger.manager.loggerDict if name.startswith("dlogger.lines")]


def test_dropped_queued_logger_stops_its_listener(tmp_path: Path) -> None:
    sink = Logger(LoggerConfig(local_path=tmp_path, queue=True))
    sink.log(1, "item")
    listener = sink._listeners[0]

    del sink
    gc.collect()

    assert listener._thread is None
    assert all(handler.stream is None for handler in listener.handlers)
    assert "item: 1" in _today_file(tmp_path).read_text(encoding="utf-8")


def test_queued_logger_flushes_on_close(tmp_path: Path) -> None:
    sink = Logger(LoggerConfig(local_path=tmp_path, queue=True))

    for index in range(3):
        sink.write_entry("(Batch.item) return", index)
    sink.close()

    texts = [LINE.match(line).group("text") for line in _lines(_today_file(tmp_path))]
    assert texts == [f"(Batch.item) return: {index}" for index in range(3)]


def test_separate_loggers_write_to_separate_directories(tmp_path: Path) -> None:
    first = Logger(LoggerConfig(local_path=tmp_path / "a"))
    second = Logger(LoggerConfig(local_path=tmp_path / "b"))

    first.log(1, "first")
    second.log(2, "second")
    first.close()
    second.close()

    assert "first: 1" in _today_file(tmp_path / "a").read_text(encoding="utf-8")
    assert "first" not in _today_file(tmp_path / "b").read_text(encoding="utf-8")


def test_logger_satisfies_line_sink_protocol(tmp_path: Path) -> None:
    assert isinstance(Logger(LoggerConfig(local_path=tmp_path)), LineSink)


def test_use_sink_binds_and_restores(tmp_path: Path) -> None:
    outer = Logger(LoggerConfig(local_path=tmp_path / "outer"))
    inner = Logger(LoggerConfig(local_path=tmp_path / "inner"))

    with use_sink(outer):
        assert current_sink() is outer
        with use_sink(inner):
            assert current_sink() is inner
        assert current_sink() is outer


def test_daily_file_handler_switches_file_per_record_date(tmp_path: Path) -> None:
    handler = DailyFileHandler(tmp_path, date_format="%Y-%m-%d", suffix=".txt")
    handler.setFormatter(logging.Formatter("%(message)s"))

    old = logging.LogRecord("t", logging.INFO, __file__, 1, "old entry", None, None)
    old.created = datetime(2024, 1, 2, 12, 0).timestamp()
    new = logging.LogRecord("t", logging.INFO, __file__, 1, "new entry", None, None)

    handler.emit(old)
    handler.emit(new)
    handler.close()

    assert (tmp_path / "2024-01-02.txt").read_text(encoding="utf-8") == "old entry\n"
    assert _today_file(tmp_path).read_text(encoding="utf-8") == "new entry\n"
