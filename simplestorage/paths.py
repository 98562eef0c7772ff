from __future__ import annotations

from pathlib import Path

from .errors import ConstructionError
from .settings import Settings, StorageConfig

STORAGE_FILENAME = "storage"


def ensure_dir(path: Path) -> Path:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConstructionError(f"cannot create storage directory {path}: {e}") from e
    return path


def home_dir() -> Path:
    try:
        return Path.home()
    except (RuntimeError, KeyError) as e:
        raise ConstructionError(f"cannot determine home directory: {e}") from e


def resolve_storage_file(name: str, config: StorageConfig | None, settings: Settings) -> Path:
    """
    Where the store called ``name`` lives, first match wins:

      1. ``$STORAGE_DIR/ss_<name>``
      2. ``<config.storage_dir>/storage``
      3. ``~/.<name>/storage``

    Directories for 2 and 3 are created when missing.
    """
    if not name:
        raise ConstructionError("store name must not be empty")

    if settings.storage_dir:
        env_dir = settings.storage_dir.rstrip("/") or "/"
        return Path(env_dir) / f"ss_{name}"

    if config is not None and config.storage_dir:
        return ensure_dir(Path(config.storage_dir).expanduser()) / STORAGE_FILENAME

    return ensure_dir(home_dir() / f".{name}") / STORAGE_FILENAME
