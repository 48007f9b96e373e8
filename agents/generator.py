"""Generator agent: turns a plan into a complete file set."""

import logging
import os
from dataclasses import dataclass

from config.defaults import DEFAULTS
from core.files import guess_language, is_reserved
from core.state import FileEntry, ParseError
from utils.llm import ResponseParseError, call_llm, extract_json, recover_build_payload

log = logging.getLogger(__name__)

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "generator.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


@dataclass
class GeneratedFiles:
    explanation: str
    files: list[FileEntry]


def file_context(files):
    return "\n".join(f"File: {f.path}\n{f.content}\n---" for f in files)


def parse_build_response(raw):
    """Parse {explanation, files} out of a build response.

    Falls back to regex recovery when the JSON is unparseable. Raises
    ResponseParseError with a raw preview when nothing usable remains.
    """
    result = extract_json(raw)
    if isinstance(result, ParseError):
        payload = recover_build_payload(raw)
        if payload is None:
            raise ResponseParseError(result.reason, raw)
    else:
        payload = result.payload

    files = payload.get("files")
    if not isinstance(files, list):
        raise ResponseParseError("Missing 'files' array", raw)

    entries = []
    for item in files:
        if not isinstance(item, dict) or not item.get("path") or not isinstance(item.get("content"), str):
            raise ResponseParseError(f"Invalid file entry: {str(item)[:80]}", raw)
        path = str(item["path"]).lstrip("/")
        if is_reserved(path):
            log.info("Dropping reserved file from model output: %s", path)
            continue
        entries.append(FileEntry(path=path, content=item["content"], language=guess_language(path)))

    if not entries:
        raise ResponseParseError("'files' array is empty", raw)

    return GeneratedFiles(explanation=str(payload.get("explanation") or ""), files=entries)


class GeneratorAgent:
    """Generates the full file set for a plan, with current files as context."""

    name = "generator"

    def __init__(self, api_key=None):
        self.api_key = api_key

    def run(self, plan: str, current_files: list) -> GeneratedFiles:
        user_message = (
            f"Based on this plan, generate the full PHP code:\n\n{plan}\n\n"
            f"Existing Files:\n{file_context(current_files)}\n\n"
            "Start your response with { immediately."
        )
        raw = call_llm(
            _load_prompt(),
            user_message,
            temperature=DEFAULTS["build_temperature"],
            api_key=self.api_key,
        )
        return parse_build_response(raw)
