"""Tests for core.files: merge, reserved paths, lookup, export."""

import io
import os
import zipfile

import pytest

from core.files import (
    default_active_file, export_zip, find_file, guess_language, initial_files,
    is_reserved, merge_files, replace_file, strip_reserved, to_payload, write_files,
)
from core.state import FileEntry


def _f(path, content=""):
    return FileEntry(path=path, content=content, language=guess_language(path))


def test_guess_language():
    assert guess_language("index.php") == "php"
    assert guess_language("css/style.css") == "css"
    assert guess_language("js/app.js") == "javascript"
    assert guess_language("README") == "text"
    assert guess_language(".htaccess") == "apache"


def test_reserved_files():
    assert is_reserved("db_config.php")
    assert is_reserved("vibe.php")
    assert is_reserved("lib/vibe.php")
    assert not is_reserved("index.php")


def test_merge_upserts_by_path():
    current = [_f("index.php", "old"), _f("style.css", "body{}")]
    merged = merge_files(current, [_f("index.php", "new"), _f("app.js", "x")])
    assert [f.path for f in merged] == ["index.php", "style.css", "app.js"]
    assert merged[0].content == "new"


def test_merge_strips_reserved_files():
    current = [_f("index.php"), _f("db_config.php")]
    merged = merge_files(current, [_f("vibe.php"), _f("about.php")])
    paths = [f.path for f in merged]
    assert "db_config.php" not in paths
    assert "vibe.php" not in paths
    assert paths == ["index.php", "about.php"]


def test_merge_does_not_mutate_input():
    current = [_f("index.php", "old")]
    merge_files(current, [_f("index.php", "new")])
    assert current[0].content == "old"


def test_find_file_exact_and_suffix():
    files = [_f("index.php"), _f("pages/about.php")]
    assert find_file(files, "index.php").path == "index.php"
    assert find_file(files, "/index.php").path == "index.php"
    assert find_file(files, "./pages/about.php").path == "pages/about.php"
    assert find_file(files, "about.php").path == "pages/about.php"
    assert find_file(files, "missing.php") is None
    assert find_file(files, "") is None


def test_replace_file():
    files = [_f("a.php", "1"), _f("b.php", "2")]
    updated = replace_file(files, _f("b.php", "3"))
    assert [f.content for f in updated] == ["1", "3"]


def test_default_active_file_prefers_entry():
    assert default_active_file([_f("a.php"), _f("index.php")]).path == "index.php"
    assert default_active_file([_f("a.php"), _f("b.php")]).path == "a.php"
    assert default_active_file([]) is None


def test_to_payload_excludes_reserved():
    payload = to_payload([_f("index.php", "x"), _f("db_config.php", "secret")])
    assert payload == [{"path": "index.php", "content": "x"}]


def test_strip_reserved():
    assert [f.path for f in strip_reserved([_f("vibe.php"), _f("index.php")])] == ["index.php"]


def test_initial_files():
    files = initial_files()
    assert files[0].path == "index.php"
    assert files[0].language == "php"


def test_export_zip_excludes_reserved():
    data = export_zip([_f("index.php", "<?php"), _f("db_config.php", "secret")])
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        assert zf.namelist() == ["index.php"]
        assert zf.read("index.php") == b"<?php"


def test_write_files(tmp_path):
    written = write_files([_f("index.php", "<?php"), _f("css/style.css", "b{}"), _f("vibe.php")],
                          str(tmp_path))
    assert written == ["index.php", "css/style.css"]
    assert (tmp_path / "css" / "style.css").read_text() == "b{}"
    assert not os.path.exists(tmp_path / "vibe.php")


def test_write_files_rejects_path_escape(tmp_path):
    with pytest.raises(ValueError):
        write_files([_f("../evil.php", "x")], str(tmp_path / "out"))
