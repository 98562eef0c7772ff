from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

logger = logging.getLogger(__name__)

_DOCUMENT: TypeAdapter[dict[str, str]] = TypeAdapter(dict[str, str])


def read_document(path: Path) -> dict[str, str] | None:
    """
    Read a flat string-to-string JSON object from disk.

    Returns None for missing or unreadable files, empty files, invalid JSON,
    and JSON that is not an object of strings.
    """
    try:
        raw = path.read_bytes()
    except OSError as e:
        logger.debug("cannot read %s: %r", path, e)
        return None
    if not raw.strip():
        return None
    try:
        return _DOCUMENT.validate_json(raw, strict=True)
    except ValidationError as e:
        logger.warning("ignoring malformed document in %s (%d errors)", path, e.error_count())
        return None


def dump_document(doc: dict[str, str], *, indent: int | None = None) -> str:
    separators = (",", ": ") if indent is not None else (",", ":")
    return json.dumps(doc, indent=indent, sort_keys=True, separators=separators, ensure_ascii=False)


def write_document(path: Path, doc: dict[str, str], *, atomic: bool = True, indent: int | None = None) -> None:
    """
    Write the whole document in one go.

    With ``atomic`` the payload goes to a temp file next to ``path`` which then
    replaces it, so readers only ever see a complete document.
    """
    payload = dump_document(doc, indent=indent)
    if not atomic:
        path.write_text(payload, encoding="utf-8")
        return
    tmp_path = path.with_name(f".{path.name}.tmp")
    try:
        with tmp_path.open("w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError:
        tmp_path.unlink(missing_ok=True)
        raise
