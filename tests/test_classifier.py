"""Tests for manager.classifier: executor error classification."""

from core.state import ErrorDetails
from manager.classifier import (
    classify_error, closest_framework_method, format_error, strip_session_prefix,
)


def _fail(error, **extra):
    return {"success": False, "error": error, **extra}


# --- Structured payloads ---

def test_structured_fields_trusted_verbatim():
    d = classify_error(_fail("boom", errorType="framework", file="admin.php", line="12",
                             code="x()", suggestion="do y", stackTrace="#0 main"))
    assert d.type == "framework"
    assert d.file == "admin.php"
    assert d.line == 12
    assert d.code == "x()"
    assert d.suggestion == "do y"
    assert d.stack_trace == "#0 main"
    assert d.message == "boom"


def test_structured_requires_both_type_and_file():
    d = classify_error(_fail("Division by zero", errorType="framework"))
    assert d.type == "runtime"


# --- Database ---

def test_missing_table_strips_session_prefix():
    d = classify_error(_fail("Table 'sess_abc123_todos' doesn't exist"))
    assert d.type == "database"
    assert d.code == "todos"
    assert "todos" in d.suggestion
    assert "sess_abc123" not in d.suggestion
    assert "CREATE TABLE IF NOT EXISTS todos" in d.suggestion


def test_missing_table_with_schema_prefix():
    d = classify_error(_fail("SQLSTATE[42S02]: Base table or view not found: 1146 "
                             "Table 'app.sess_x9_users' doesn't exist"))
    assert d.type == "database"
    assert d.code == "users"


def test_sqlite_no_such_table():
    d = classify_error(_fail("SQLSTATE[HY000]: General error: 1 no such table: notes"))
    assert d.type == "database"
    assert "CREATE TABLE IF NOT EXISTS notes" in d.suggestion


def test_unknown_column():
    d = classify_error(_fail("SQLSTATE[42S22]: Column not found: 1054 Unknown column 'due_date' in 'field list'"))
    assert d.type == "database"
    assert d.code == "due_date"


def test_sqlite_no_such_column():
    d = classify_error(_fail("General error: 1 no such column: priority"))
    assert d.type == "database"
    assert d.code == "priority"


def test_mysql_syntax_error():
    d = classify_error(_fail("You have an error in your SQL syntax; check the manual"))
    assert d.type == "database"
    assert d.suggestion


def test_sqlite_syntax_error():
    d = classify_error(_fail('SQLSTATE[HY000]: General error: 1 near "FROM": syntax error'))
    assert d.type == "database"


def test_duplicate_entry():
    d = classify_error(_fail("Duplicate entry 'bob@example.com' for key 'email'"))
    assert d.type == "database"
    assert "unique" in d.suggestion.lower()


def test_unique_constraint_failed():
    d = classify_error(_fail("UNIQUE constraint failed: users.email"))
    assert d.type == "database"


# --- Syntax ---

def test_php_parse_error_with_location():
    d = classify_error(_fail('PHP Parse error: syntax error, unexpected token "}" '
                             'in /www/sess_abc/index.php on line 14'))
    assert d.type == "syntax"
    assert d.code == "}"
    assert d.file == "index.php"
    assert d.line == 14


def test_unexpected_without_token_word():
    d = classify_error(_fail("syntax error, unexpected '$name' (T_VARIABLE)"))
    assert d.type == "syntax"
    assert d.code == "$name"


# --- Framework ---

def test_framework_method_typo_suggests_closest():
    d = classify_error(_fail("Fatal error: Uncaught Error: Call to undefined method Vibe\\DB::fetchAl() "
                             "in /www/list.php on line 7"))
    assert d.type == "framework"
    assert "fetchAll" in d.suggestion
    assert d.file == "list.php"
    assert d.line == 7


def test_framework_method_without_close_match_lists_methods():
    d = classify_error(_fail("Call to undefined method Vibe\\App::zzzzzz()"))
    assert d.type == "framework"
    assert "query" in d.suggestion


def test_framework_class_not_found_suggests_include():
    d = classify_error(_fail('Uncaught Error: Class "Vibe\\App" not found in /www/index.php:3'))
    assert d.type == "framework"
    assert "require_once" in d.suggestion
    assert "vibe.php" in d.suggestion
    assert d.line == 3


def test_closest_framework_method():
    assert closest_framework_method("fetchal") == "fetchAll"
    assert closest_framework_method("qeury") == "query"


# --- Runtime ---

def test_undefined_variable():
    d = classify_error(_fail("Warning: Undefined variable $total in /www/cart.php on line 22"))
    assert d.type == "runtime"
    assert d.code == "$total"
    assert d.file == "cart.php"


def test_division_by_zero():
    d = classify_error(_fail("Uncaught DivisionByZeroError: Division by zero"))
    assert d.type == "runtime"


def test_undefined_function():
    d = classify_error(_fail("Call to undefined function render_page()"))
    assert d.type == "runtime"
    assert d.code == "render_page()"


# --- Unknown / totality ---

def test_unmatched_message_preserved_verbatim():
    msg = "Something odd happened: 0x1F"
    d = classify_error(_fail(msg))
    assert d.type == "unknown"
    assert d.message == msg
    assert d.file == "index.php"
    assert d.line is None


def test_non_dict_payloads_never_raise():
    for payload in (None, "", "plain string error", 42, ["list"], {}):
        d = classify_error(payload)
        assert isinstance(d, ErrorDetails)


def test_plain_string_payload_keeps_message():
    d = classify_error("weird failure")
    assert d.type == "unknown"
    assert d.message == "weird failure"


def test_stack_trace_extracted():
    d = classify_error(_fail("Uncaught Exception: nope in /www/index.php:5\nStack trace:\n#0 {main}\n  thrown"))
    assert d.stack_trace.startswith("#0 {main}")


def test_strip_session_prefix():
    assert strip_session_prefix("sess_abc123_todos") == "todos"
    assert strip_session_prefix("main.sess_1_user_roles") == "user_roles"
    assert strip_session_prefix("todos") == "todos"


# --- format_error ---

def test_format_error_includes_location_and_suggestion():
    d = ErrorDetails(type="syntax", file="index.php", line=4, message="Parse error",
                     suggestion="Add a semicolon")
    text = format_error(d)
    assert "index.php line 4" in text
    assert "Parse error" in text
    assert "Add a semicolon" in text
