"""Configuration loaded from the environment and an optional ``.env`` file."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv

if TYPE_CHECKING:
    from dlogger.sink import LoggerConfig

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUTHY:
        return True
    if normalized in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {value!r}.")


@dataclass(slots=True)
class Settings:
    """Top-level configuration container."""

    log_dir: Path = Path("log")
    console: bool = False
    queue: bool = False
    width: int = 100
    diagnostics_level: str = "WARNING"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "Settings":
        """Load configuration values from environment variables.

        ``.env`` in the working directory is read first; variables already
        present in the environment take precedence.
        """

        load_dotenv(dotenv_path=env_file or Path.cwd() / ".env")

        def _get_env(name: str, default: str) -> str:
            return os.getenv(name, default)

        raw_width = _get_env("DLOGGER_WIDTH", "100").strip()
        if not raw_width.isdigit() or int(raw_width) <= 0:
            raise ValueError(f"DLOGGER_WIDTH must be a positive integer, got {raw_width!r}.")

        return cls(
            log_dir=Path(_get_env("DLOGGER_LOG_DIR", "log")),
            console=_parse_bool("DLOGGER_CONSOLE", _get_env("DLOGGER_CONSOLE", "0")),
            queue=_parse_bool("DLOGGER_QUEUE", _get_env("DLOGGER_QUEUE", "0")),
            width=int(raw_width),
            diagnostics_level=_get_env("DLOGGER_DIAGNOSTICS_LEVEL", "WARNING").upper(),
        )

    def logger_config(self, subdir: str | None = None) -> "LoggerConfig":
        """Build a sink configuration rooted at ``log_dir`` (or a sub directory of it)."""

        from dlogger.sink import LoggerConfig

        local_path = self.log_dir / subdir if subdir else self.log_dir
        return LoggerConfig(
            local_path=local_path,
            console=self.console,
            queue=self.queue,
            width=self.width,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance."""

    settings = Settings.from_env()

    # Import locally to avoid circular dependencies during module import time.
    from .log import get_logger

    logger = get_logger(__name__)
    logger.debug(
        "Settings initialised: log_dir=%s console=%s queue=%s width=%s",
        settings.log_dir,
        settings.console,
        settings.queue,
        settings.width,
    )
    return settings
