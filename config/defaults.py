"""Default agent settings."""

DEFAULTS = {
    "max_fix_attempts": 3,      # auto-fix rounds per cycle before handing back to the user
    "model": "claude-sonnet-4-5-20250929",
    "max_tokens": 16384,
    "plan_temperature": 0.6,
    "build_temperature": 0.1,
    "fix_temperature": 0.2,
    "history_window": 4,        # prior chat turns sent with a plan request
    "executor_url": "https://streamingsites.eu.org/phpvibe-executor/index.php",
    "request_timeout": 60,
    "entry_file": "index.php",
    # Provided by the executor; never generated, shown or exported
    "reserved_files": ("db_config.php", "vibe.php"),
    "framework_namespace": "Vibe",
    "framework_include": "require_once __DIR__ . '/vibe.php';",
    "framework_methods": [
        "query", "fetch", "fetchAll", "insert", "update", "delete", "table",
        "where", "first", "count", "render", "redirect", "input", "json",
        "route", "session", "flash", "escape",
    ],
}

WELCOME_MESSAGE = "Hi! I'm VibePHP. Describe your idea, and I'll create a plan before building it."

INITIAL_FILES = [
    {
        "path": "index.php",
        "content": (
            "<?php\n"
            "// Welcome to VibePHP\n"
            "// Start by describing your app in the chat.\n"
            "// We use SQLite for data persistence.\n"
            "\n"
            "$title = \"VibePHP\";\n"
            "echo \"<h1>Hello World</h1>\";\n"
            "echo \"<p>Ready to build with PHP & SQLite.</p>\";\n"
            "?>"
        ),
    },
]
