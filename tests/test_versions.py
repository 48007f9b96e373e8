"""Tests for core.versions.VersionStore."""

from core.state import ErrorDetails, FileEntry
from core.versions import VersionStore


def _files():
    return [
        FileEntry(path="index.php", content="<?php echo 1;", language="php"),
        FileEntry(path="style.css", content="body {}", language="css"),
    ]


def test_record_appends_entries():
    store = VersionStore()
    store.record("first", _files())
    store.record("second", _files())
    assert len(store) == 2
    assert [v.description for v in store.list()] == ["first", "second"]
    assert store.latest().description == "second"


def test_record_returns_entry_with_id_and_timestamp():
    entry = VersionStore().record("first", _files())
    assert entry.id
    assert entry.timestamp > 0
    assert len(entry.files) == 2


def test_snapshot_is_isolated_from_live_set():
    store = VersionStore()
    live = _files()
    entry = store.record("snap", live)

    live[0].content = "<?php echo 2;"
    live.append(FileEntry(path="new.php", content="", language="php"))

    stored = store.get(entry.id)
    assert stored.files[0].content == "<?php echo 1;"
    assert len(stored.files) == 2


def test_restore_returns_copy():
    store = VersionStore()
    entry = store.record("snap", _files())

    restored = store.restore(entry.id)
    restored[0].content = "changed"

    assert store.restore(entry.id)[0].content == "<?php echo 1;"


def test_restore_unknown_id_returns_none():
    assert VersionStore().restore("missing") is None


def test_error_is_stored_with_snapshot():
    store = VersionStore()
    err = ErrorDetails(type="syntax", file="index.php", message="Parse error", line=3)
    entry = store.record("failed", _files(), error=err)
    err.line = 99
    assert store.get(entry.id).error.line == 3


def test_latest_on_empty_store():
    assert VersionStore().latest() is None
