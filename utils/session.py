"""Session identifiers for per-session executor state."""

import uuid


def new_session_id():
    """Opaque token, e.g. 'sess_3f9c2a1b7d04'. The executor prefixes session tables with it."""
    return f"sess_{uuid.uuid4().hex[:12]}"
