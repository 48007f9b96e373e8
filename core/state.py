"""Agent state models shared across all stages."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum


@dataclass
class FileEntry:
    path: str           # relative path e.g. "index.php"
    content: str
    language: str       # "php", "html", "css", etc.


@dataclass
class Message:
    role: str           # "user", "assistant", "system"
    content: str        # markdown
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: float = field(default_factory=time.time)
    is_loading: bool = False


class AgentState(str, Enum):
    IDLE = "IDLE"
    PLANNING = "PLANNING"
    PLAN_READY = "PLAN_READY"
    CODING = "CODING"
    VERIFYING = "VERIFYING"
    ERROR_DETECTED = "ERROR_DETECTED"
    PLANNING_FIX = "PLANNING_FIX"
    FIX_READY = "FIX_READY"
    APPLYING_PATCH = "APPLYING_PATCH"


# States where the agent waits for the user to confirm the next step
CONFIRMABLE_STATES = (AgentState.PLAN_READY, AgentState.ERROR_DETECTED, AgentState.FIX_READY)


@dataclass
class ErrorDetails:
    type: str           # syntax|database|runtime|framework|unknown
    file: str
    message: str
    line: int | None = None
    code: str | None = None
    stack_trace: str | None = None
    suggestion: str | None = None


@dataclass
class AgentStatus:
    """What the UI renders. Replaced wholesale on every transition."""
    state: AgentState = AgentState.IDLE
    message: str = ""
    stream_content: str = ""
    error: str | None = None
    error_details: ErrorDetails | None = None
    fix_attempt: int = 0


@dataclass
class Patch:
    line_number: int    # 1-based
    old_code: str
    new_code: str
    explanation: str = ""


@dataclass
class Fix:
    file: str
    patches: list[Patch]
    analysis: str = ""
    root_cause: str = ""
    confidence: int = 0  # 0-100


@dataclass(frozen=True)
class VersionEntry:
    id: str
    timestamp: float
    files: tuple[FileEntry, ...]
    description: str
    error: ErrorDetails | None = None


@dataclass
class ParseOk:
    payload: dict


@dataclass
class ParseError:
    raw: str
    reason: str
