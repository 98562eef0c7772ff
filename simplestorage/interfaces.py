from __future__ import annotations

from pathlib import Path
from typing import Protocol


class KeyValueDocumentStore(Protocol):
    """
    A single flat JSON document (string keys, string values) persisted as a whole.
    """

    @property
    def path(self) -> Path:
        ...

    def load(self) -> dict[str, str]:
        """Load and return the full document (never None, empty on any failure)."""
        ...

    def save(self, doc: dict[str, str]) -> None:
        """Persist the full document. Raises WriteFailure."""
        ...
