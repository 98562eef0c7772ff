from __future__ import annotations

from typing import Any


class StorageError(Exception):
    """Base class for everything this package raises."""


class ConstructionError(StorageError):
    """The storage directory or file could not be created; no handle was built."""


class KeyNotFound(StorageError, KeyError):
    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"key not found: {self.key!r}"


class DecodeError(StorageError, ValueError):
    """A stored value does not parse as the requested kind."""

    def __init__(self, reason: str, *, kind: str = "", key: str | None = None, raw: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.kind = kind
        self.key = key
        self.raw = raw

    def __str__(self) -> str:
        where = f" for key {self.key!r}" if self.key is not None else ""
        return f"cannot decode {self.kind or 'value'}{where}: {self.reason}"


class EncodingError(StorageError, ValueError):
    def __init__(self, message: str, *, kind: str = "", value: Any = None):
        super().__init__(message)
        self.kind = kind
        self.value = value


class WriteFailure(StorageError, OSError):
    """Writing the document to disk failed. Only raised in strict mode."""


class WatchError(StorageError):
    """The filesystem watch could not be set up or read."""
