"""Claude API client and model-output parsing."""

import json
import logging
import os
import re

import anthropic

from config.defaults import DEFAULTS
from core.state import ParseError, ParseOk

log = logging.getLogger(__name__)

MODEL = os.environ.get("VIBEPHP_MODEL", DEFAULTS["model"])
MAX_TOKENS = DEFAULTS["max_tokens"]
PREVIEW_CHARS = 200


class LLMError(RuntimeError):
    """A transport failure translated into a user-actionable message."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class MissingAPIKeyError(LLMError):
    pass


class ResponseParseError(RuntimeError):
    """Model output that could not be parsed or recovered."""

    def __init__(self, reason, raw):
        self.reason = reason
        self.raw = raw
        super().__init__(
            "Failed to parse AI response\n\n"
            f"Error: {reason}\n\n"
            "This usually means:\n"
            "1. The request was too complex (try simpler)\n"
            "2. The response was cut off\n"
            "3. The model added extra text\n\n"
            f"First {PREVIEW_CHARS} chars of response:\n{preview(raw)}"
        )


def preview(text, limit=PREVIEW_CHARS):
    text = text or ""
    return text if len(text) <= limit else text[:limit] + "..."


def get_client(api_key=None):
    """Return an Anthropic client. The environment key wins over a user-entered one."""
    api_key = os.environ.get("ANTHROPIC_API_KEY") or api_key
    if not api_key:
        raise MissingAPIKeyError(
            "API Key Required\n\n"
            "Set the ANTHROPIC_API_KEY environment variable or enter your key "
            "in the settings.\n\n"
            "Get a key at: https://console.anthropic.com/"
        )
    return anthropic.Anthropic(api_key=api_key)


def translate_api_error(exc):
    """Map an anthropic SDK exception to an LLMError with a clear message."""
    if isinstance(exc, anthropic.AuthenticationError):
        return LLMError("Invalid API Key\n\nCheck your key at: https://console.anthropic.com/", 401)
    if isinstance(exc, anthropic.PermissionDeniedError):
        return LLMError("Permission denied\n\nThis API key cannot use the configured model.", 403)
    if isinstance(exc, anthropic.NotFoundError):
        return LLMError(
            f"Model Not Found\n\n\"{MODEL}\" is not available.\n\n"
            "Set VIBEPHP_MODEL to a model your key can access.",
            404,
        )
    if isinstance(exc, anthropic.RateLimitError):
        return LLMError("Rate limit exceeded. Wait a moment and try again.", 429)
    if isinstance(exc, anthropic.APITimeoutError):
        return LLMError("The AI service timed out. Try again in a moment.")
    if isinstance(exc, anthropic.APIConnectionError):
        return LLMError("Could not reach the AI service. Check your network connection.")
    if isinstance(exc, anthropic.APIStatusError):
        status = exc.status_code
        if status >= 500:
            return LLMError("API temporarily unavailable. Try again in a moment.", status)
        return LLMError(f"API Error: {exc.message}\nStatus: {status}", status)
    return LLMError(f"API Error: {exc}\nStatus: Unknown")


def build_history(messages, window=None):
    """Turn chat messages into provider turns.

    Keeps the last `window` non-loading user/assistant messages, drops
    leading assistant turns and merges consecutive same-role turns.
    """
    window = DEFAULTS["history_window"] if window is None else window
    usable = [m for m in messages if not m.is_loading and m.role in ("user", "assistant")]
    usable = usable[-window:] if window else []

    turns = []
    for m in usable:
        if not turns and m.role == "assistant":
            continue
        if turns and turns[-1]["role"] == m.role:
            turns[-1]["content"] += "\n\n" + m.content
        else:
            turns.append({"role": m.role, "content": m.content})
    return turns


def stream_llm(system_prompt, messages, on_chunk=None, temperature=None, api_key=None):
    """Stream a completion, calling on_chunk with the cumulative text.

    The last on_chunk call always carries the complete text. Returns the
    complete text.
    """
    client = get_client(api_key)
    kwargs = {
        "model": MODEL,
        "max_tokens": MAX_TOKENS,
        "system": system_prompt,
        "messages": messages,
    }
    if temperature is not None:
        kwargs["temperature"] = temperature

    text = ""
    try:
        with client.messages.stream(**kwargs) as stream:
            for chunk in stream.text_stream:
                text += chunk
                if on_chunk:
                    on_chunk(text)
            response_msg = stream.get_final_message()
    except anthropic.APIError as e:
        raise translate_api_error(e) from e

    if response_msg.stop_reason == "max_tokens":
        log.warning("Response hit the token limit (%d chars)", len(text))
    return text


def call_llm(system_prompt, user_message, temperature=None, api_key=None):
    """Call Claude with a single user turn and return the raw text."""
    return stream_llm(
        system_prompt,
        [{"role": "user", "content": user_message}],
        temperature=temperature,
        api_key=api_key,
    )


_FENCE_OPEN_RE = re.compile(r"^```[\w-]*\s*")
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")
_TRAILING_COMMA_RE = re.compile(r",(\s*[}\]])")


def extract_json(raw):
    """Parse a JSON object out of noisy model output.

    Strips code fences, slices from the first '{' to the last '}' and
    removes trailing commas before parsing. Returns ParseOk or ParseError.
    """
    if not raw or not raw.strip():
        return ParseError(raw or "", "Empty response")

    cleaned = raw.strip()
    cleaned = _FENCE_OPEN_RE.sub("", cleaned)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned)

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first == -1 or last == -1 or last < first:
        return ParseError(raw, "No JSON object found in response")

    cleaned = _TRAILING_COMMA_RE.sub(r"\1", cleaned[first:last + 1])

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as e:
        return ParseError(raw, f"Invalid JSON: {e}")
    if not isinstance(payload, dict):
        return ParseError(raw, "Top-level JSON value is not an object")
    return ParseOk(payload)


_JSON_STRING = r'"((?:[^"\\]|\\.)*)"'
_EXPLANATION_RE = re.compile(r'"explanation"\s*:\s*' + _JSON_STRING, re.DOTALL)
_FILE_RE = re.compile(
    r'\{\s*"path"\s*:\s*' + _JSON_STRING + r'\s*,\s*"content"\s*:\s*' + _JSON_STRING,
    re.DOTALL,
)


def _unescape(value):
    try:
        return json.loads(f'"{value}"')
    except json.JSONDecodeError:
        return value.replace('\\"', '"').replace("\\n", "\n").replace("\\\\", "\\")


def recover_build_payload(raw):
    """Field-by-field regex recovery of {explanation, files[{path, content}]}.

    Returns a payload dict, or None when no file could be recovered.
    """
    files = [
        {"path": _unescape(path), "content": _unescape(content)}
        for path, content in _FILE_RE.findall(raw or "")
    ]
    if not files:
        return None
    m = _EXPLANATION_RE.search(raw)
    explanation = _unescape(m.group(1)) if m else ""
    log.info("Recovered %d file(s) from malformed JSON", len(files))
    return {"explanation": explanation, "files": files}
