"""Line-addressed patch application. Never raises."""

import logging
import re

log = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def exact_match(current_line, expected):
    """Tier 1: lines are equal once leading/trailing whitespace is trimmed."""
    return current_line.strip() == expected.strip()


def whitespace_insensitive_match(current_line, expected):
    """Tier 2: lines are equal with every whitespace character removed."""
    return _WHITESPACE_RE.sub("", current_line) == _WHITESPACE_RE.sub("", expected)


def _indent_of(line):
    return line[:len(line) - len(line.lstrip())]


def apply_patches(content, patches):
    """Apply single-line replacements to content and return the new text.

    Patches are applied bottom-up so earlier line numbers stay valid.
    A patch whose line is out of range, or whose old_code matches neither
    tier, is skipped; the remaining patches still apply.
    """
    if not patches:
        return content

    lines = content.split("\n")
    ordered = sorted(patches, key=lambda p: _line_key(p), reverse=True)

    for patch in ordered:
        index = _line_key(patch) - 1
        if index < 0 or index >= len(lines):
            log.warning("Skipping patch: line %s out of range (%d lines)",
                        getattr(patch, "line_number", None), len(lines))
            continue

        current = lines[index]
        old_code = str(getattr(patch, "old_code", "") or "")
        new_code = str(getattr(patch, "new_code", "") or "")

        if exact_match(current, old_code):
            pass
        elif whitespace_insensitive_match(current, old_code):
            log.info("Patch at line %d matched ignoring whitespace", index + 1)
        else:
            log.warning("Skipping patch at line %d: expected %r, found %r",
                        index + 1, old_code.strip(), current.strip())
            continue

        # Keep CRLF endings intact
        eol = "\r" if current.endswith("\r") else ""
        lines[index] = _indent_of(current) + new_code.strip() + eol

    return "\n".join(lines)


def _line_key(patch):
    """Line number as int; malformed values sort last and fall out of range."""
    try:
        return int(getattr(patch, "line_number", 0))
    except (TypeError, ValueError):
        return 0
