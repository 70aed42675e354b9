"""Settings read from the environment (and an optional ``.env`` file)."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import find_dotenv, load_dotenv

ENV_LOG_LEVEL = "MINIDUMP_READER_LOG_LEVEL"
ENV_READ_SIZE = "MINIDUMP_READER_READ_SIZE"
ENV_HEXDUMP_WIDTH = "MINIDUMP_READER_HEXDUMP_WIDTH"


@dataclass(frozen=True)
class ReaderSettings:
    log_level: int = logging.WARNING
    read_size: int = 200
    hexdump_width: int = 16


def _positive_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw, 0)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


def _log_level(env: Mapping[str, str]) -> int:
    raw = (env.get(ENV_LOG_LEVEL) or "WARNING").strip().upper()
    level = logging.getLevelName(raw)
    if not isinstance(level, int):
        raise ValueError(f"{ENV_LOG_LEVEL} must be a logging level name, got {raw!r}")
    return level


def load_settings(env: Optional[Mapping[str, str]] = None, dotenv: bool = True) -> ReaderSettings:
    """Build settings from ``env`` (defaults to ``os.environ``).

    When reading the process environment, a ``.env`` file in the working
    directory is loaded first; variables already set win.
    """
    if env is None:
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))
        env = os.environ
    return ReaderSettings(
        log_level=_log_level(env),
        read_size=_positive_int(env, ENV_READ_SIZE, ReaderSettings.read_size),
        hexdump_width=_positive_int(env, ENV_HEXDUMP_WIDTH, ReaderSettings.hexdump_width),
    )
