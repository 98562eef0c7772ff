from __future__ import annotations

import logging
import weakref
from collections.abc import Callable
from pathlib import Path
from typing import Any

from . import codec
from .disk_store import DiskJsonDocumentStore
from .document import DocumentStore
from .errors import EncodingError, KeyNotFound, WriteFailure
from .locks import GLOBAL_PATH_LOCKS
from .notify import NotificationHub, Subscription
from .paths import resolve_storage_file
from .settings import Settings, StorageConfig, get_settings
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)

_MISSING: Any = object()


def _reload_callback(ref: weakref.ReferenceType[Storage]) -> Callable[[], None]:
    # the watcher thread must not keep the handle alive
    def _on_change() -> None:
        storage = ref()
        if storage is not None:
            storage._reload_and_notify()

    return _on_change


class Storage:
    """
    A named key-value store kept in one JSON file, mirrored in memory.

    Values are strings on disk; ``store``/``get`` convert through a codec kind
    (see ``simplestorage.codec``). Every write saves the whole document and then
    signals subscribers. A background watcher reloads the document and signals
    subscribers whenever the file changes, whoever changed it.

    Writes are fire-and-forget: an unencodable value is stored as "" and a
    failed disk write is only logged, unless the handle is strict.
    """

    def __init__(
        self,
        name: str,
        config: StorageConfig | None = None,
        *,
        settings: Settings | None = None,
        strict: bool | None = None,
        start_watcher: bool = True,
    ) -> None:
        self._settings = settings or get_settings()
        self._name = name
        self._strict = self._settings.strict if strict is None else strict

        path = resolve_storage_file(name, config, self._settings)
        self._file = DiskJsonDocumentStore(
            path,
            atomic=self._settings.atomic_writes,
            indent=self._settings.indent,
        )
        self._file.ensure_exists()

        self._lock = GLOBAL_PATH_LOCKS.lock_for(path)
        self._doc = DocumentStore()
        self._hub = NotificationHub(
            self._lock,
            policy=self._settings.notify_policy,
            timeout=self._settings.notify_timeout,
            buffer=self._settings.notify_buffer,
        )
        self.reload()

        self._watcher = ChangeWatcher(
            path,
            _reload_callback(weakref.ref(self)),
            backend=self._settings.watch_backend,
            poll_interval=self._settings.poll_interval,
        )
        self._finalizer = weakref.finalize(self, self._watcher.stop)
        if start_watcher:
            self._watcher.start()
        logger.debug("opened store %r at %s (%d keys)", name, path, len(self._doc))

    def __repr__(self) -> str:
        return f"Storage(name={self._name!r}, path={str(self.path)!r})"

    # -------------------------------------------------------------------
    # lifecycle
    # -------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @property
    def path(self) -> Path:
        return self._file.path

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def watcher(self) -> ChangeWatcher:
        return self._watcher

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    def close(self) -> None:
        """Stop the change watcher. The in-memory view stays readable."""
        self._finalizer()

    def __enter__(self) -> Storage:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -------------------------------------------------------------------
    # load / save / notify
    # -------------------------------------------------------------------

    def reload(self) -> None:
        """Replace the in-memory document with the file's contents (empty if unreadable)."""
        with self._lock:
            self._doc.replace_all(self._file.load())
        logger.debug("reloaded %s (%d keys)", self.path, len(self._doc))

    def _reload_and_notify(self) -> None:
        self.reload()
        self._hub.broadcast()

    def _write_locked(self) -> WriteFailure | None:
        try:
            self._file.save(self._doc.snapshot())
        except WriteFailure as e:
            logger.warning("STORE SAVE: failed to write %s: %r", self.path, e)
            return e
        return None

    def _commit(self, mutate: Callable[[DocumentStore], None]) -> None:
        with self._lock:
            mutate(self._doc)
            failure = self._write_locked()
        self._hub.broadcast()
        if failure is not None and self._strict:
            raise failure

    def subscribe_to_changes(self) -> Subscription:
        """A subscription signalled once per save or detected change of the file."""
        return self._hub.subscribe()

    subscribe = subscribe_to_changes

    # -------------------------------------------------------------------
    # generic typed access
    # -------------------------------------------------------------------

    def store(self, key: str, value: Any, kind: Any = None) -> None:
        """Encode ``value`` as ``kind`` (inferred when None), upsert it and save."""
        try:
            raw = codec.encode(value, kind)
        except EncodingError as e:
            if self._strict:
                raise
            logger.warning("cannot encode value for key %r, storing empty string: %s", key, e)
            raw = ""
        self._commit(lambda doc: doc.set(key, raw))

    def get(self, key: str, kind: Any = str, *, default: Any = _MISSING) -> Any:
        """
        Look up ``key`` and decode it as ``kind``.

        Raises KeyNotFound (unless ``default`` is given) or DecodeError.
        """
        try:
            raw = self._doc.get(key)
        except KeyNotFound:
            if default is not _MISSING:
                return default
            raise
        return codec.decode(raw, kind, key=key)

    def delete(self, key: str) -> None:
        """Remove ``key`` and save. Raises KeyNotFound if it is not there."""
        self._commit(lambda doc: doc.delete(key))

    def keys(self) -> list[str]:
        return self._doc.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._doc

    def __len__(self) -> int:
        return len(self._doc)

    # -------------------------------------------------------------------
    # shortcuts for the common kinds
    # -------------------------------------------------------------------

    def store_string(self, key: str, value: str) -> None:
        self.store(key, value, codec.STRING)

    def get_string(self, key: str) -> str:
        return self.get(key, codec.STRING)

    def store_int(self, key: str, value: int, kind: str = "int") -> None:
        self.store(key, value, kind)

    def get_int(self, key: str, kind: str = "int") -> int:
        return self.get(key, kind)

    def store_float(self, key: str, value: float, kind: str = "float64") -> None:
        self.store(key, value, kind)

    def get_float(self, key: str, kind: str = "float64") -> float:
        return self.get(key, kind)

    def store_complex(self, key: str, value: complex, kind: str = "complex128") -> None:
        self.store(key, value, kind)

    def get_complex(self, key: str, kind: str = "complex128") -> complex:
        return self.get(key, kind)

    def store_value(self, key: str, value: Any, tp: Any = None) -> None:
        """Store any JSON-serializable value (models and dataclasses included)."""
        self.store(key, value, codec.ANY if tp is None else codec.structured_kind(tp))

    def get_value(self, key: str, tp: Any = Any) -> Any:
        return self.get(key, codec.structured_kind(tp))


def open_storage(name: str, storage_dir: str | Path | None = None, **kwargs: Any) -> Storage:
    config = StorageConfig(storage_dir) if storage_dir is not None else None
    return Storage(name, config, **kwargs)
