from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import cast

from dotenv import load_dotenv

from .notify import POLICIES, SlowSubscriberPolicy
from .watcher import BACKENDS

STORAGE_DIR_ENV = "STORAGE_DIR"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() in ("none", "forever"):
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _env_int(name: str, default: int | None) -> int | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    if raw.strip().lower() == "none":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    raw = (os.getenv(name) or default).strip().lower()
    if raw not in choices:
        raise ValueError(f"{name} must be one of {', '.join(choices)}, got {raw!r}")
    return raw


@dataclass(frozen=True)
class StorageConfig:
    """Explicit placement: the store file becomes ``<storage_dir>/storage``."""

    storage_dir: str | Path | None = None


@dataclass(frozen=True)
class Settings:
    # Placement override (wins over StorageConfig and the home directory)
    storage_dir: str

    # Change watcher
    watch_backend: str
    poll_interval: float

    # Notifications
    notify_policy: SlowSubscriberPolicy
    notify_timeout: float | None
    notify_buffer: int

    # Writes
    strict: bool
    atomic_writes: bool
    indent: int | None


def get_settings() -> Settings:
    storage_dir = os.getenv(STORAGE_DIR_ENV, "")

    watch_backend = _env_choice("SIMPLESTORAGE_WATCH_BACKEND", "auto", BACKENDS)
    poll_interval = _env_float("SIMPLESTORAGE_POLL_INTERVAL", 0.5)
    if poll_interval is None or poll_interval <= 0:
        raise ValueError("SIMPLESTORAGE_POLL_INTERVAL must be a positive number")

    notify_policy = cast(SlowSubscriberPolicy, _env_choice("SIMPLESTORAGE_NOTIFY_POLICY", "drop", POLICIES))
    notify_timeout = _env_float("SIMPLESTORAGE_NOTIFY_TIMEOUT", 1.0)
    notify_buffer = _env_int("SIMPLESTORAGE_NOTIFY_BUFFER", 1)
    if notify_buffer is None or notify_buffer < 1:
        raise ValueError("SIMPLESTORAGE_NOTIFY_BUFFER must be at least 1")

    # Off by default: write failures are logged, not raised
    strict = _env_bool("SIMPLESTORAGE_STRICT", False)
    atomic_writes = _env_bool("SIMPLESTORAGE_ATOMIC_WRITES", True)
    indent = _env_int("SIMPLESTORAGE_INDENT", None)

    return Settings(
        storage_dir=storage_dir,
        watch_backend=watch_backend,
        poll_interval=poll_interval,
        notify_policy=notify_policy,
        notify_timeout=notify_timeout,
        notify_buffer=notify_buffer,
        strict=strict,
        atomic_writes=atomic_writes,
        indent=indent,
    )


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Read settings after loading ``env_file`` (if given) into the environment."""
    if env_file is not None:
        load_dotenv(env_file)
    return get_settings()
