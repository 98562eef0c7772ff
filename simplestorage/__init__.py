"""Embeddable key-value store persisted as a single JSON document.

Layout:
    <dir>/storage     (or $STORAGE_DIR/ss_<name>)
        {"key": "encoded value", ...}

Every value is kept as a string; ``simplestorage.codec`` converts typed values
(integers of each width, floats, complex numbers, JSON-able structures) to and
from that string. A background watcher reloads the in-memory view whenever the
file changes on disk and signals subscribers.
"""

from __future__ import annotations

from .aio import AsyncStorage
from .codec import Kind, decode, encode
from .errors import (
    ConstructionError,
    DecodeError,
    EncodingError,
    KeyNotFound,
    StorageError,
    WatchError,
    WriteFailure,
)
from .notify import Subscription
from .settings import Settings, StorageConfig, get_settings, load_settings
from .storage import Storage, open_storage

__all__ = [
    "AsyncStorage",
    "ConstructionError",
    "DecodeError",
    "EncodingError",
    "KeyNotFound",
    "Kind",
    "Settings",
    "Storage",
    "StorageConfig",
    "StorageError",
    "Subscription",
    "WatchError",
    "WriteFailure",
    "decode",
    "encode",
    "get_settings",
    "load_settings",
    "open_storage",
]
