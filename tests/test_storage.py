from __future__ import annotations

import dataclasses
import gc
import json
import logging
import threading
from pathlib import Path

import pytest
from pydantic import BaseModel

from simplestorage import (
    ConstructionError,
    DecodeError,
    EncodingError,
    KeyNotFound,
    Storage,
    StorageConfig,
    WriteFailure,
    open_storage,
)
from simplestorage.json_store import read_document
from simplestorage.watcher import WatcherState


class Profile(BaseModel):
    name: str
    tags: list[str] = []


def test_explicit_dir_store_and_read_back(open_store, tmp_path: Path):
    s = open_store("demo", StorageConfig(tmp_path / "x"))
    assert s.path == tmp_path / "x" / "storage"

    s.store_string("a", "hello")

    raw = s.path.read_text(encoding="utf-8")
    assert json.loads(raw) == {"a": "hello"}
    assert raw == '{"a":"hello"}'
    assert s.get_string("a") == "hello"


def test_missing_key(open_store):
    s = open_store("empty")
    with pytest.raises(KeyNotFound):
        s.get_int("missing")
    assert s.get("missing", int, default=0) == 0
    assert "missing" not in s
    assert len(s) == 0


def test_default_location_is_under_home(open_store, sandbox_env: Path):
    s = open_store("myapp")
    assert s.path == sandbox_env / ".myapp" / "storage"
    assert s.path.is_file()


def test_env_dir_location(open_store, tmp_path: Path, fast_settings):
    settings = dataclasses.replace(fast_settings, storage_dir=f"{tmp_path}/env/")
    s = open_store("demo", StorageConfig(tmp_path / "ignored"), settings=settings)
    assert s.path == tmp_path / "env" / "ss_demo"
    assert s.path.is_file()


def test_construction_error(fast_settings, tmp_path: Path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    with pytest.raises(ConstructionError):
        Storage("demo", StorageConfig(blocker / "sub"), settings=fast_settings)


def test_typed_roundtrips(open_store, tmp_path: Path):
    s = open_store("typed", StorageConfig(tmp_path))
    s.store_int("i8", -5, "int8")
    s.store_int("u64", 2**64 - 1, "uint64")
    s.store_float("f32", 1.5, "float32")
    s.store_float("f64", 0.1)
    s.store_complex("c", complex(1, -2))
    s.store_value("profile", Profile(name="ann", tags=["x"]))
    s.store("n", 7)

    assert s.get_int("i8", "int8") == -5
    assert s.get_int("u64", "uint64") == 2**64 - 1
    assert s.get_float("f32", "float32") == 1.5
    assert s.get_float("f64") == 0.1
    assert s.get_complex("c") == complex(1, -2)
    assert s.get_value("profile", Profile) == Profile(name="ann", tags=["x"])
    assert s.get_value("profile") == {"name": "ann", "tags": ["x"]}
    assert s.get("n", int) == 7

    on_disk = read_document(s.path)
    assert on_disk is not None
    assert on_disk["i8"] == "-5"
    assert on_disk["n"] == "7"
    assert sorted(s.keys()) == sorted(on_disk)


def test_decode_error_surfaces(open_store):
    s = open_store("dec")
    s.store_string("word", "hello")
    with pytest.raises(DecodeError) as exc:
        s.get_int("word")
    assert exc.value.reason == "not a number"
    assert exc.value.key == "word"

    with pytest.raises(DecodeError) as exc:
        s.get_value("word", Profile)
    assert exc.value.reason == "invalid JSON"


def test_unencodable_value_is_stored_empty(open_store, caplog):
    s = open_store("lenient")
    with caplog.at_level(logging.WARNING, logger="simplestorage.storage"):
        s.store_int("small", 1000, "int8")
    assert s.get_string("small") == ""
    assert read_document(s.path) == {"small": ""}
    assert "cannot encode" in caplog.text


def test_strict_mode_raises_before_mutating(open_store):
    s = open_store("strict", strict=True)
    with pytest.raises(EncodingError):
        s.store_int("small", 1000, "int8")
    assert "small" not in s
    assert read_document(s.path) is None


def test_write_failure_is_logged_not_raised(open_store, caplog):
    s = open_store("wf", start_watcher=False)
    sub = s.subscribe_to_changes()
    s.path.unlink()
    s.path.mkdir()  # saves now fail

    with caplog.at_level(logging.WARNING, logger="simplestorage.storage"):
        s.store_string("k", "v")
    # memory reflects the attempted change, subscribers still hear about it
    assert s.get_string("k") == "v"
    assert sub.wait(timeout=1)
    assert "failed to write" in caplog.text


def test_write_failure_raises_in_strict_mode(open_store):
    s = open_store("wf-strict", start_watcher=False, strict=True)
    sub = s.subscribe_to_changes()
    s.path.unlink()
    s.path.mkdir()
    with pytest.raises(WriteFailure):
        s.store_string("k", "v")
    assert sub.wait(timeout=1)


def test_delete(open_store):
    s = open_store("del")
    s.store_string("a", "1")
    s.store_string("b", "2")
    s.delete("a")
    assert read_document(s.path) == {"b": "2"}
    with pytest.raises(KeyNotFound):
        s.delete("a")


def test_own_save_notifies_subscribers(open_store):
    s = open_store("notify")
    first = s.subscribe_to_changes()
    second = s.subscribe()
    s.store_string("k", "v")
    assert first.wait(timeout=1)
    assert second.wait(timeout=1)


def test_external_overwrite_is_picked_up(open_store, eventually):
    s = open_store("ext")
    sub = s.subscribe_to_changes()
    s.path.write_text('{"b":"42"}', encoding="utf-8")

    assert sub.wait(timeout=5)
    assert eventually(lambda: s.get("b", default=None) == "42")
    assert s.get_string("b") == "42"
    assert s.get_int("b") == 42


def test_malformed_file_loads_as_empty(open_store, tmp_path: Path):
    path = tmp_path / "storage"
    path.write_text("{this is not json", encoding="utf-8")
    s = open_store("broken", StorageConfig(tmp_path))
    assert len(s) == 0
    assert s.keys() == []

    # the next save replaces the broken file with a valid document
    s.store_string("a", "1")
    assert read_document(path) == {"a": "1"}


def test_non_string_values_load_as_empty(open_store, tmp_path: Path):
    (tmp_path / "storage").write_text('{"a": 1}', encoding="utf-8")
    s = open_store("ints", StorageConfig(tmp_path))
    assert len(s) == 0


def test_two_handles_converge(open_store, tmp_path: Path, eventually):
    writer = open_store("shared", StorageConfig(tmp_path))
    reader = open_store("shared", StorageConfig(tmp_path))
    sub = reader.subscribe_to_changes()

    writer.store_string("k", "v")

    assert sub.wait(timeout=5)
    assert eventually(lambda: "k" in reader)
    assert reader.get_string("k") == "v"


def test_concurrent_stores_on_distinct_keys(open_store, tmp_path: Path):
    s = open_store("busy", StorageConfig(tmp_path))

    def _writer(n: int) -> None:
        for i in range(20):
            s.store_int(f"w{n}-{i}", i)

    threads = [threading.Thread(target=_writer, args=(n,)) for n in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    expected = {f"w{n}-{i}": str(i) for n in range(6) for i in range(20)}
    assert read_document(s.path) == expected
    assert sorted(s.keys()) == sorted(expected)


def test_reload_without_watcher(open_store):
    s = open_store("manual", start_watcher=False)
    assert s.watcher.state is WatcherState.IDLE
    s.path.write_text('{"x":"1"}', encoding="utf-8")
    assert "x" not in s
    s.reload()
    assert s.get_string("x") == "1"


def test_close_and_context_manager(fast_settings, tmp_path: Path):
    with Storage("ctx", StorageConfig(tmp_path), settings=fast_settings) as s:
        assert s.watcher.running
        assert not s.closed
    assert s.closed
    assert s.watcher.state is WatcherState.STOPPED
    assert not s.watcher.running
    s.close()  # idempotent

    # the in-memory view stays usable after close
    s.store_string("after", "close")
    assert s.get_string("after") == "close"


def test_discarded_handle_stops_its_watcher(fast_settings, tmp_path: Path, eventually):
    s = Storage("gc", StorageConfig(tmp_path), settings=fast_settings)
    watcher = s.watcher
    assert watcher.running
    del s
    gc.collect()
    assert eventually(lambda: not watcher.running)
    assert watcher.state is WatcherState.STOPPED


def test_open_storage_helper(fast_settings, tmp_path: Path):
    s = open_storage("helper", tmp_path / "dir", settings=fast_settings)
    try:
        assert s.path == tmp_path / "dir" / "storage"
        assert s.name == "helper"
    finally:
        s.close()
