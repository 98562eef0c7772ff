from __future__ import annotations

import logging
from pathlib import Path

from .errors import ConstructionError, WriteFailure
from .interfaces import KeyValueDocumentStore
from .json_store import read_document, write_document

logger = logging.getLogger(__name__)


class DiskJsonDocumentStore(KeyValueDocumentStore):
    """
    Stores a single flat JSON document on disk at a fixed path.

    - Always returns a dict (empty dict on missing/unreadable/invalid JSON).
    - Writes the whole document at once, atomically unless told otherwise.
    - Does no locking; the owning handle holds the mutex around ``save``.
    """

    def __init__(self, path: Path, *, atomic: bool = True, indent: int | None = None):
        self._path = path
        self._atomic = atomic
        self._indent = indent

    @property
    def path(self) -> Path:
        return self._path

    def ensure_exists(self) -> None:
        """Create the parent directory and an empty file if they are missing."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            if not self._path.exists():
                self._path.touch()
        except OSError as e:
            raise ConstructionError(f"cannot create storage file {self._path}: {e}") from e

    def load(self) -> dict[str, str]:
        doc = read_document(self._path)
        return doc if doc is not None else {}

    def save(self, doc: dict[str, str]) -> None:
        try:
            write_document(self._path, doc, atomic=self._atomic, indent=self._indent)
        except OSError as e:
            raise WriteFailure(e.errno, f"error saving data to {self._path}: {e.strerror or e}") from e
