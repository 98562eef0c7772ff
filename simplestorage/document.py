from __future__ import annotations

from collections.abc import Iterator, Mapping

from .errors import KeyNotFound


class DocumentStore:
    """
    In-memory mirror of the storage file: string keys to string values.

    No locking of its own; the owning handle serializes access.
    """

    def __init__(self, data: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> str:
        try:
            return self._data[key]
        except KeyError:
            raise KeyNotFound(key) from None

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        try:
            del self._data[key]
        except KeyError:
            raise KeyNotFound(key) from None

    def replace_all(self, document: Mapping[str, str]) -> None:
        # rebind rather than mutate so readers never see a half-filled mapping
        self._data = dict(document)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)

    def keys(self) -> list[str]:
        return list(self._data)

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)
