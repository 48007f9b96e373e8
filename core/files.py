"""File-set helpers: merge, reserved-path filtering, lookup, export."""

import io
import os
import zipfile

from config.defaults import DEFAULTS, INITIAL_FILES
from core.state import FileEntry

RESERVED_FILES = frozenset(DEFAULTS["reserved_files"])


def guess_language(filepath):
    """Guess language from file extension."""
    ext_map = {
        ".php": "php", ".html": "html", ".htm": "html", ".css": "css",
        ".js": "javascript", ".json": "json", ".txt": "text",
        ".md": "markdown", ".sql": "sql", ".xml": "xml",
        ".yml": "yaml", ".yaml": "yaml", ".ini": "ini",
        ".htaccess": "apache",
    }
    base = os.path.basename(filepath)
    if base.startswith(".") and base in ext_map:
        return ext_map[base]
    _, ext = os.path.splitext(filepath)
    return ext_map.get(ext.lower(), "text")


def is_reserved(path):
    return os.path.basename(path) in RESERVED_FILES or path in RESERVED_FILES


def strip_reserved(files):
    """Drop executor-provided infrastructure files."""
    return [f for f in files if not is_reserved(f.path)]


def merge_files(current, incoming):
    """Upsert incoming files into current by path.

    Existing paths are replaced in place, new paths are appended, and
    reserved paths are stripped from the result. Returns a new list.
    """
    merged = list(current)
    index = {f.path: i for i, f in enumerate(merged)}
    for f in incoming:
        if f.path in index:
            merged[index[f.path]] = f
        else:
            index[f.path] = len(merged)
            merged.append(f)
    return strip_reserved(merged)


def find_file(files, path):
    """Find a file by exact path, falling back to a suffix match."""
    if not path:
        return None
    for f in files:
        if f.path == path:
            return f
    normalized = path[2:] if path.startswith("./") else path.lstrip("/")
    for f in files:
        if (f.path == normalized or f.path.endswith("/" + normalized)
                or normalized.endswith("/" + f.path)):
            return f
    for f in files:
        if os.path.basename(f.path) == os.path.basename(normalized):
            return f
    return None


def replace_file(files, updated):
    return [updated if f.path == updated.path else f for f in files]


def default_active_file(files):
    """Entry file if present, else the first file."""
    for f in files:
        if f.path == DEFAULTS["entry_file"]:
            return f
    return files[0] if files else None


def to_payload(files):
    """Serialize to the wire shape the executor and UI expect."""
    return [{"path": f.path, "content": f.content} for f in strip_reserved(files)]


def initial_files():
    return [
        FileEntry(path=f["path"], content=f["content"], language=guess_language(f["path"]))
        for f in INITIAL_FILES
    ]


def export_zip(files):
    """Zip the exportable files in memory and return the bytes."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for f in strip_reserved(files):
            zf.writestr(f.path, f.content)
    return buf.getvalue()


def write_files(files, output_dir):
    """Write exportable files to disk under output_dir."""
    os.makedirs(output_dir, exist_ok=True)
    written = []
    for f in strip_reserved(files):
        full_path = os.path.join(output_dir, f.path)
        resolved = os.path.realpath(full_path)
        if not resolved.startswith(os.path.realpath(output_dir) + os.sep):
            raise ValueError(f"Path escapes output directory: {f.path}")
        os.makedirs(os.path.dirname(resolved), exist_ok=True)
        with open(resolved, "w") as fp:
            fp.write(f.content)
        written.append(f.path)
    return written
