"""Fixer agent: asks for a minimal line patch set for a classified error."""

import os

from config.defaults import DEFAULTS
from core.state import ErrorDetails, FileEntry, Fix, ParseError, Patch
from utils.llm import ResponseParseError, call_llm, extract_json

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "fixer.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


def numbered(content):
    """Prefix each line with its 1-based number so the model can address it."""
    return "\n".join(f"{i:4d} | {line}" for i, line in enumerate(content.split("\n"), 1))


def _clamp_confidence(value):
    try:
        return max(0, min(100, int(float(value))))
    except (TypeError, ValueError):
        return 0


def parse_fix_response(raw, default_file):
    """Parse {analysis, rootCause, fix: {file, patches}, confidence} into a Fix."""
    result = extract_json(raw)
    if isinstance(result, ParseError):
        raise ResponseParseError(result.reason, raw)
    payload = result.payload

    fix = payload.get("fix")
    if not isinstance(fix, dict):
        raise ResponseParseError("Missing 'fix' object", raw)
    raw_patches = fix.get("patches")
    if not isinstance(raw_patches, list) or not raw_patches:
        raise ResponseParseError("Missing or empty 'patches' array", raw)

    patches = []
    for item in raw_patches:
        if not isinstance(item, dict):
            continue
        try:
            line_number = int(item.get("lineNumber"))
        except (TypeError, ValueError):
            continue
        patches.append(Patch(
            line_number=line_number,
            old_code=str(item.get("oldCode") or ""),
            new_code=str(item.get("newCode") or ""),
            explanation=str(item.get("explanation") or ""),
        ))
    if not patches:
        raise ResponseParseError("No patch has a usable lineNumber", raw)

    return Fix(
        file=str(fix.get("file") or default_file),
        patches=patches,
        analysis=str(payload.get("analysis") or ""),
        root_cause=str(payload.get("rootCause") or ""),
        confidence=_clamp_confidence(payload.get("confidence")),
    )


class FixerAgent:
    """Produces a Fix for one file from an ErrorDetails record."""

    name = "fixer"

    def __init__(self, api_key=None):
        self.api_key = api_key

    def run(self, details: ErrorDetails, file: FileEntry) -> Fix:
        parts = [
            f"Error type: {details.type}",
            f"File: {file.path}",
        ]
        if details.line:
            parts.append(f"Line: {details.line}")
        if details.code:
            parts.append(f"Offending code: {details.code}")
        parts.append(f"Message:\n{details.message}")
        if details.suggestion:
            parts.append(f"Suggested direction: {details.suggestion}")
        parts.append(f"\n--- {file.path} ---\n{numbered(file.content)}")

        raw = call_llm(
            _load_prompt(),
            "\n".join(parts),
            temperature=DEFAULTS["fix_temperature"],
            api_key=self.api_key,
        )
        return parse_fix_response(raw, file.path)
