"""Regex error classifier for executor failure payloads. Pure, never raises."""

import difflib
import re

from config.defaults import DEFAULTS
from core.state import ErrorDetails

_NAMESPACE = DEFAULTS["framework_namespace"]
_FRAMEWORK_METHODS = DEFAULTS["framework_methods"]

# Per-session table prefix added by the executor, e.g. "sess_abc123_todos"
_SESSION_PREFIX_RE = re.compile(r"^sess_[A-Za-z0-9]+_")

_LOCATION_RES = [
    re.compile(r"\bin\s+(\S+?\.php)\s+on\s+line\s+(\d+)", re.IGNORECASE),
    re.compile(r"\bin\s+(\S+?\.php):(\d+)", re.IGNORECASE),
]
_STACK_TRACE_RE = re.compile(r"Stack trace:\s*\n(.*)", re.IGNORECASE | re.DOTALL)
# Executor document roots that prefix reported paths
_ROOT_PREFIX_RE = re.compile(r"^.*/(?:www|htdocs|sess_[A-Za-z0-9]+)/")

_TABLE_MISSING_RES = [
    re.compile(r"table\s+['\"`]?([\w.]+)['\"`]?\s+doesn'?t\s+exist", re.IGNORECASE),
    re.compile(r"no\s+such\s+table:?\s+['\"`]?([\w.]+)", re.IGNORECASE),
]
_UNKNOWN_COLUMN_RES = [
    re.compile(r"unknown\s+column\s+['\"`]?([\w.]+)", re.IGNORECASE),
    re.compile(r"no\s+such\s+column:?\s+['\"`]?([\w.]+)", re.IGNORECASE),
    re.compile(r"has\s+no\s+column\s+named\s+['\"`]?(\w+)", re.IGNORECASE),
]
_SQL_SYNTAX_RE = re.compile(
    r"error\s+in\s+your\s+sql\s+syntax|syntax\s+error.*\bsql\b|sqlstate.*syntax\s+error",
    re.IGNORECASE | re.DOTALL,
)
_DUPLICATE_RE = re.compile(r"duplicate\s+entry|unique\s+constraint\s+failed", re.IGNORECASE)
_SYNTAX_RE = re.compile(r"parse\s+error|syntax\s+error|unexpected", re.IGNORECASE)
_UNEXPECTED_TOKEN_RE = re.compile(
    r"unexpected\s+(?:token\s+)?(?:identifier\s+)?[\"'`]?([^\"'`,\s]+)[\"'`]?", re.IGNORECASE
)
_UNDEFINED_METHOD_RE = re.compile(
    r"call\s+to\s+undefined\s+method\s+\\?(" + re.escape(_NAMESPACE) + r"[\w\\]*)::(\w+)\(",
    re.IGNORECASE,
)
_CLASS_NOT_FOUND_RE = re.compile(
    r"class\s+[\"'`]?\\?(" + re.escape(_NAMESPACE) + r"(?:\\[\w\\]+)?)[\"'`]?\s+not\s+found",
    re.IGNORECASE,
)
_UNDEFINED_VARIABLE_RE = re.compile(r"undefined\s+variable:?\s+\$?(\w+)", re.IGNORECASE)
_UNDEFINED_FUNCTION_RE = re.compile(r"call\s+to\s+undefined\s+function\s+([\w\\]+)\(", re.IGNORECASE)
_DIVISION_BY_ZERO_RE = re.compile(r"division\s+by\s+zero", re.IGNORECASE)


def classify_error(payload):
    """Turn an executor failure payload into ErrorDetails.

    payload is normally the executor's JSON dict ({"success": False,
    "error": "..."}), but a bare string is accepted too. Structured
    fields (errorType + file) are trusted verbatim; otherwise the message
    is matched against the patterns below in priority order. Unmatched
    messages come back as type "unknown" with the text preserved.
    """
    if not isinstance(payload, dict):
        payload = {"error": payload}

    message = _message_of(payload)

    if payload.get("errorType") and payload.get("file"):
        return ErrorDetails(
            type=str(payload["errorType"]),
            file=str(payload["file"]),
            message=message,
            line=_to_int(payload.get("line")),
            code=_str_or_none(payload.get("code")),
            stack_trace=_str_or_none(payload.get("stackTrace")),
            suggestion=_str_or_none(payload.get("suggestion")),
        )

    file, line = _extract_location(message)
    details = ErrorDetails(
        type="unknown",
        file=file,
        line=line,
        message=message,
        stack_trace=_extract_stack_trace(message) or _str_or_none(payload.get("stackTrace")),
    )

    for rule in _RULES:
        if rule(message, details):
            break
    return details


def _message_of(payload):
    for key in ("error", "message", "output"):
        value = payload.get(key)
        if value:
            return value if isinstance(value, str) else str(value)
    return ""


def _extract_location(message):
    for pattern in _LOCATION_RES:
        m = pattern.search(message)
        if m:
            return _normalize_path(m.group(1)), int(m.group(2))
    return DEFAULTS["entry_file"], None


def _normalize_path(path):
    path = _ROOT_PREFIX_RE.sub("", path)
    if path.startswith("./"):
        path = path[2:]
    return path.lstrip("/") or DEFAULTS["entry_file"]


def _extract_stack_trace(message):
    m = _STACK_TRACE_RE.search(message)
    return m.group(1).strip() if m else None


def _to_int(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _str_or_none(value):
    return None if value is None else str(value)


def strip_session_prefix(table):
    """'main.sess_abc123_todos' -> 'todos'."""
    table = table.rsplit(".", 1)[-1]
    return _SESSION_PREFIX_RE.sub("", table) or table


def closest_framework_method(name):
    """Closest known framework method, compared case-insensitively, or None."""
    lowered = {m.lower(): m for m in _FRAMEWORK_METHODS}
    matches = difflib.get_close_matches(name.lower(), list(lowered), n=1, cutoff=0.5)
    return lowered[matches[0]] if matches else None


# --- Rules (priority order). Each returns True when it claimed the message. ---

def _missing_table(message, details):
    for pattern in _TABLE_MISSING_RES:
        m = pattern.search(message)
        if m:
            table = strip_session_prefix(m.group(1))
            details.type = "database"
            details.code = table
            details.suggestion = (
                f"Table '{table}' does not exist. Create it before it is queried, "
                f"at the top of the script:\n\n"
                f"$pdo->exec(\"CREATE TABLE IF NOT EXISTS {table} (\n"
                f"    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
                f"    created_at DATETIME DEFAULT CURRENT_TIMESTAMP\n"
                f")\");"
            )
            return True
    return False


def _unknown_column(message, details):
    for pattern in _UNKNOWN_COLUMN_RES:
        m = pattern.search(message)
        if m:
            column = m.group(1).rsplit(".", 1)[-1]
            details.type = "database"
            details.code = column
            details.suggestion = (
                f"Column '{column}' is missing. Add it to the CREATE TABLE statement "
                f"or fix the column name in the query."
            )
            return True
    return False


def _sql_syntax(message, details):
    if not _SQL_SYNTAX_RE.search(message):
        return False
    details.type = "database"
    details.suggestion = (
        "The SQL statement is malformed. Check quoting, commas between columns "
        "and reserved words used as identifiers."
    )
    return True


def _duplicate_entry(message, details):
    if not _DUPLICATE_RE.search(message):
        return False
    details.type = "database"
    details.suggestion = (
        "A row with the same unique value already exists. Check for an existing "
        "row first or use INSERT OR IGNORE."
    )
    return True


def _php_syntax(message, details):
    if not _SYNTAX_RE.search(message):
        return False
    details.type = "syntax"
    m = _UNEXPECTED_TOKEN_RE.search(message)
    if m:
        token = m.group(1)
        details.code = token
        details.suggestion = (
            f"Unexpected '{token}'. Look for a missing semicolon, bracket or quote "
            f"just before it."
        )
    else:
        details.suggestion = "Check the line for a missing semicolon, bracket or quote."
    return True


def _framework_method(message, details):
    m = _UNDEFINED_METHOD_RE.search(message)
    if not m:
        return False
    cls, method = m.group(1), m.group(2)
    details.type = "framework"
    details.code = f"{cls}::{method}()"
    closest = closest_framework_method(method)
    if closest and closest != method:
        details.suggestion = f"{cls} has no method '{method}'. Did you mean '{closest}()'?"
    else:
        available = ", ".join(_FRAMEWORK_METHODS)
        details.suggestion = f"{cls} has no method '{method}'. Available methods: {available}."
    return True


def _framework_class(message, details):
    m = _CLASS_NOT_FOUND_RE.search(message)
    if not m:
        return False
    details.type = "framework"
    details.code = m.group(1)
    details.suggestion = (
        f"The framework is not loaded. Add this at the top of the file:\n\n"
        f"{DEFAULTS['framework_include']}"
    )
    return True


def _undefined_variable(message, details):
    m = _UNDEFINED_VARIABLE_RE.search(message)
    if not m:
        return False
    details.type = "runtime"
    details.code = f"${m.group(1)}"
    details.suggestion = f"Variable ${m.group(1)} is used before it is assigned. Initialize it first."
    return True


def _undefined_function(message, details):
    m = _UNDEFINED_FUNCTION_RE.search(message)
    if not m:
        return False
    details.type = "runtime"
    details.code = f"{m.group(1)}()"
    details.suggestion = f"Function {m.group(1)}() is not defined. Define it or include the file that does."
    return True


def _division_by_zero(message, details):
    if not _DIVISION_BY_ZERO_RE.search(message):
        return False
    details.type = "runtime"
    details.suggestion = "Guard the division so the divisor is never zero."
    return True


_RULES = [
    _missing_table,
    _unknown_column,
    _sql_syntax,
    _duplicate_entry,
    _php_syntax,
    _framework_method,
    _framework_class,
    _undefined_variable,
    _undefined_function,
    _division_by_zero,
]


def format_error(details):
    """Human-readable chat summary of an ErrorDetails."""
    loc = details.file
    if details.line:
        loc += f" line {details.line}"
    lines = [f"**{details.type.capitalize()} error** in `{loc}`", "", details.message]
    if details.suggestion:
        lines += ["", f"**Suggestion:** {details.suggestion}"]
    return "\n".join(lines)
