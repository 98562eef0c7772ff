from __future__ import annotations

import dataclasses
import time
from pathlib import Path
import sys
from typing import Callable, Iterator

import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from simplestorage.settings import Settings, get_settings  # noqa: E402
from simplestorage.storage import Storage  # noqa: E402


@pytest.fixture(autouse=True)
def sandbox_env(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> Path:
    """
    Point HOME at a temp directory and clear STORAGE_* overrides so tests never
    touch a real store.
    """
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("STORAGE_DIR", raising=False)
    for name in (
        "SIMPLESTORAGE_WATCH_BACKEND",
        "SIMPLESTORAGE_POLL_INTERVAL",
        "SIMPLESTORAGE_NOTIFY_POLICY",
        "SIMPLESTORAGE_NOTIFY_TIMEOUT",
        "SIMPLESTORAGE_NOTIFY_BUFFER",
        "SIMPLESTORAGE_STRICT",
        "SIMPLESTORAGE_ATOMIC_WRITES",
        "SIMPLESTORAGE_INDENT",
    ):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def fast_settings() -> Settings:
    """Polling watcher with a short interval: portable and quick to react."""
    return dataclasses.replace(get_settings(), watch_backend="poll", poll_interval=0.05)


@pytest.fixture
def open_store(fast_settings: Settings) -> Iterator[Callable[..., Storage]]:
    opened: list[Storage] = []

    def _open(name: str = "demo", config=None, **kwargs) -> Storage:
        kwargs.setdefault("settings", fast_settings)
        s = Storage(name, config, **kwargs)
        opened.append(s)
        return s

    yield _open
    for s in opened:
        s.close()


def wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def eventually() -> Callable[..., bool]:
    return wait_until
