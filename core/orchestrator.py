"""Agent orchestrator: plan → build → verify → fix → retry state machine.

Every step is gated on the user: the orchestrator stops at PLAN_READY,
ERROR_DETECTED and FIX_READY and waits for confirm(). Auto-fix is capped
at max_fix_attempts per cycle.
"""

import logging
import threading

from agents.fixer import FixerAgent
from agents.generator import GeneratorAgent
from agents.planner import PlannerAgent
from agents.verifier import VerificationError, VerifierAgent
from config.defaults import DEFAULTS, WELCOME_MESSAGE
from core import files as fileset
from core.patcher import apply_patches
from core.state import AgentState, AgentStatus, CONFIRMABLE_STATES, FileEntry, Message
from core.versions import VersionStore
from manager.classifier import classify_error, format_error
from utils.llm import LLMError, ResponseParseError

log = logging.getLogger(__name__)


class AgentBusyError(RuntimeError):
    """A new request was submitted while a cycle is in flight."""


class InvalidTransitionError(RuntimeError):
    """A command was issued in a state that does not accept it."""


def summarize_fix(fix):
    """Chat summary: patch count, one line per patch, confidence."""
    count = len(fix.patches)
    lines = [f"🔧 **Fix ready** for `{fix.file}`: {count} patch{'es' if count != 1 else ''}", ""]
    if fix.root_cause:
        lines += [f"**Root cause:** {fix.root_cause}", ""]
    for i, patch in enumerate(sorted(fix.patches, key=lambda p: p.line_number), 1):
        rationale = patch.explanation or "replace line"
        lines.append(f"{i}. Line {patch.line_number}: {rationale}")
    lines += ["", f"Confidence: {fix.confidence}%"]
    return "\n".join(lines)


class Orchestrator:
    """Owns the live file set, chat log, version log and AgentStatus.

    Only one cycle may be in flight. Each cycle carries an id; cancel()
    and submit() bump it, and a response is applied only if the id it
    was issued under is still current.
    """

    def __init__(self, planner=None, generator=None, fixer=None, verifier=None,
                 files=None, api_key=None, max_fix_attempts=None, on_status=None):
        self.planner = planner or PlannerAgent(api_key)
        self.generator = generator or GeneratorAgent(api_key)
        self.fixer = fixer or FixerAgent(api_key)
        self.verifier = verifier or VerifierAgent()
        self.max_fix_attempts = DEFAULTS["max_fix_attempts"] if max_fix_attempts is None else max_fix_attempts
        self.on_status = on_status

        self.files = list(files) if files is not None else fileset.initial_files()
        active = fileset.default_active_file(self.files)
        self.active_path = active.path if active else None
        self.messages = [Message(role="assistant", content=WELCOME_MESSAGE)]
        self.versions = VersionStore()
        self.status = AgentStatus()
        self.view_mode = "code"
        self.preview_url = None

        self._plan = ""
        self._pending_fix = None
        self._cycle = 0
        self._lock = threading.RLock()

    @property
    def session_id(self):
        return self.verifier.session_id

    @property
    def busy(self):
        return self.status.state != AgentState.IDLE

    @property
    def pending_fix(self):
        return self._pending_fix

    @property
    def active_file(self):
        return fileset.find_file(self.files, self.active_path)

    # --- Chat log and status -------------------------------------------------

    def post(self, role, content, is_loading=False):
        msg = Message(role=role, content=content, is_loading=is_loading)
        self.messages.append(msg)
        return msg

    def remove_message(self, message_id):
        self.messages = [m for m in self.messages if m.id != message_id]

    def _set_status(self, state, message="", stream_content="", error=None,
                    error_details=None, fix_attempt=None):
        if fix_attempt is None:
            fix_attempt = self.status.fix_attempt
        self.status = AgentStatus(
            state=state,
            message=message,
            stream_content=stream_content,
            error=error,
            error_details=error_details,
            fix_attempt=fix_attempt,
        )
        self._notify()

    def _notify(self):
        if self.on_status:
            self.on_status(self.status)

    def _is_current(self, cycle):
        if cycle != self._cycle:
            log.info("Discarding response from cancelled cycle %d (current %d)", cycle, self._cycle)
            return False
        return True

    def _require(self, state):
        if self.status.state != state:
            raise InvalidTransitionError(
                f"Cannot do that while {self.status.state.value} (expected {state.value})"
            )

    def _fail(self, cycle, text, state=AgentState.IDLE, **status):
        with self._lock:
            if not self._is_current(cycle):
                return self.status
            self.post("assistant", text)
            self._set_status(state, **status)
            return self.status

    # --- Commands ------------------------------------------------------------
    # begin*() claim a transition under the lock and return the remaining
    # network-bound work as a callable.

    def begin(self, prompt):
        """Claim IDLE → PLANNING for a fresh cycle. Returns the planning step."""
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("Prompt is empty")

        with self._lock:
            if self.busy:
                raise AgentBusyError("The agent is busy. Cancel or finish the current step first.")
            self._cycle += 1
            cycle = self._cycle
            history = list(self.messages)
            self.post("user", prompt)
            self._plan = ""
            self._pending_fix = None
            self._set_status(AgentState.PLANNING, "Architecting solution...", fix_attempt=0)
            placeholder = self.post("assistant", "", is_loading=True)

        return lambda: self._stream_plan(cycle, prompt, history, placeholder)

    def submit(self, prompt):
        """IDLE → PLANNING → PLAN_READY. Starts a fresh cycle."""
        return self.begin(prompt)()

    def _stream_plan(self, cycle, prompt, history, placeholder):
        def on_chunk(text):
            with self._lock:
                if cycle != self._cycle:
                    return
                self.status.stream_content = text
                self._notify()

        try:
            plan = self.planner.run(prompt, history, on_chunk=on_chunk)
        except LLMError as e:
            with self._lock:
                self.remove_message(placeholder.id)
            return self._fail(cycle, f"❌ **Planning failed**\n\n{e}")

        with self._lock:
            self.remove_message(placeholder.id)
            if not self._is_current(cycle):
                return self.status
            self._plan = plan
            self.post("assistant", plan)
            self._set_status(AgentState.PLAN_READY, "Plan ready for review", stream_content=plan)
            return self.status

    def begin_confirm(self):
        """Claim the next step from whichever confirmable state the agent is in."""
        with self._lock:
            state = self.status.state
            if state == AgentState.PLAN_READY:
                return self._begin_build()
            if state == AgentState.ERROR_DETECTED:
                return self._begin_plan_fix()
            if state == AgentState.FIX_READY:
                return self._begin_apply_fix()
            raise InvalidTransitionError(f"Nothing to confirm while {state.value}")

    def confirm(self):
        """Advance from whichever confirmable state the agent is in."""
        return self.begin_confirm()()

    def build(self):
        """PLAN_READY → CODING → VERIFYING."""
        return self._begin_build()()

    def _begin_build(self):
        with self._lock:
            self._require(AgentState.PLAN_READY)
            cycle = self._cycle
            plan = self._plan
            current = list(self.files)
            self._set_status(AgentState.CODING, "Generating files...", stream_content=plan)
        return lambda: self._generate(cycle, plan, current)

    def _generate(self, cycle, plan, current):
        try:
            generated = self.generator.run(plan, current)
        except (LLMError, ResponseParseError) as e:
            return self._fail(cycle, f"❌ **Code generation failed**\n\n{e}")

        with self._lock:
            if not self._is_current(cycle):
                return self.status
            if self.files:
                self.versions.record("Before AI generation", self.files)
            self.files = fileset.merge_files(self.files, generated.files)
            if self.active_file is None:
                active = fileset.default_active_file(self.files)
                self.active_path = active.path if active else None
            self.versions.record("Code generated by AI", self.files)

            paths = ", ".join(f"`{f.path}`" for f in generated.files)
            summary = generated.explanation or "Code generated."
            self.post("assistant", f"📝 {summary}\n\nUpdated {len(generated.files)} file(s): {paths}")

        return self._verify(cycle)

    def _verify(self, cycle):
        """VERIFYING → IDLE (success) | ERROR_DETECTED | IDLE (cap reached)."""
        with self._lock:
            if not self._is_current(cycle):
                return self.status
            self._set_status(AgentState.VERIFYING, "Running diagnostics...")
            files = list(self.files)

        try:
            result = self.verifier.run(files)
        except VerificationError as e:
            return self._fail(cycle, f"❌ **Verification failed**\n\n{e}")

        with self._lock:
            if not self._is_current(cycle):
                return self.status

            if result.success:
                self.versions.record("Working version", self.files)
                self.view_mode = "preview"
                self.preview_url = result.url
                self.post("assistant", "✅ App built and verified successfully.")
                self._set_status(AgentState.IDLE)
                return self.status

            details = classify_error({**result.raw, "error": result.error})
            first_line = details.message.strip().split("\n", 1)[0][:80]
            self.versions.record(f"Deployment failed: {first_line}", self.files, error=details)
            formatted = format_error(details)

            attempt = self.status.fix_attempt
            if attempt >= self.max_fix_attempts:
                self.post(
                    "assistant",
                    f"⚠️ **Maximum fix attempts reached ({attempt}/{self.max_fix_attempts}).** "
                    f"Manual intervention needed.\n\n{formatted}",
                )
                self._set_status(AgentState.IDLE)
                return self.status

            self.post("assistant", f"🐞 **Diagnostics failed**\n\n{formatted}")
            self._set_status(
                AgentState.ERROR_DETECTED,
                message=formatted,
                error=details.message,
                error_details=details,
            )
            return self.status

    def plan_fix(self):
        """ERROR_DETECTED → PLANNING_FIX → FIX_READY (or back to ERROR_DETECTED)."""
        return self._begin_plan_fix()()

    def _begin_plan_fix(self):
        with self._lock:
            self._require(AgentState.ERROR_DETECTED)
            cycle = self._cycle
            details = self.status.error_details
            target = fileset.find_file(self.files, details.file) if details else None
            if target is None:
                missing = details.file if details else "unknown file"
                self.post("assistant", f"❌ Cannot auto-fix: `{missing}` is not in the current file set.")
                self._set_status(AgentState.IDLE)
                status = self.status
                return lambda: status
            self._set_status(
                AgentState.PLANNING_FIX,
                f"Analyzing {target.path}...",
                error=details.message,
                error_details=details,
            )
        return lambda: self._generate_fix(cycle, details, target)

    def _generate_fix(self, cycle, details, target):
        try:
            fix = self.fixer.run(details, target)
        except (LLMError, ResponseParseError) as e:
            return self._fail(
                cycle,
                f"❌ **Fix generation failed**\n\n{e}",
                state=AgentState.ERROR_DETECTED,
                message=f"Fix generation failed: {e}",
                error=details.message,
                error_details=details,
            )

        with self._lock:
            if not self._is_current(cycle):
                return self.status
            # Patch the file the error points at, whatever path the model echoed
            fix.file = target.path
            self._pending_fix = fix
            summary = summarize_fix(fix)
            self.post("assistant", summary)
            self._set_status(
                AgentState.FIX_READY,
                summary,
                error=details.message,
                error_details=details,
            )
            return self.status

    def apply_fix(self):
        """FIX_READY → APPLYING_PATCH → VERIFYING."""
        return self._begin_apply_fix()()

    def _begin_apply_fix(self):
        with self._lock:
            self._require(AgentState.FIX_READY)
            cycle = self._cycle
            fix = self._pending_fix
            self._set_status(
                AgentState.APPLYING_PATCH,
                f"Applying {len(fix.patches)} patch(es) to {fix.file}...",
            )

            target = fileset.find_file(self.files, fix.file)
            if target is None:
                self._pending_fix = None
                self.post("assistant", f"❌ Cannot apply fix: `{fix.file}` is no longer in the file set.")
                self._set_status(AgentState.IDLE)
                status = self.status
                return lambda: status

            patched = apply_patches(target.content, fix.patches)
            if patched == target.content:
                log.warning("No patch matched %s; re-verifying unchanged file", target.path)
            self.files = fileset.replace_file(
                self.files, FileEntry(path=target.path, content=patched, language=target.language)
            )
            attempt = self.status.fix_attempt + 1
            self.versions.record(f"Applied fix attempt {attempt}", self.files)
            self._pending_fix = None
            self.post("assistant", f"🩹 Applied fix attempt {attempt}/{self.max_fix_attempts} to `{target.path}`.")
            self._set_status(AgentState.APPLYING_PATCH, f"Applied fix attempt {attempt}", fix_attempt=attempt)

        return lambda: self._verify(cycle)

    def cancel(self):
        """Any state → IDLE. In-flight responses are discarded when they land."""
        with self._lock:
            if not self.busy:
                return self.status
            self._cycle += 1
            self._pending_fix = None
            self.messages = [m for m in self.messages if not m.is_loading]
            self.post("assistant", "⏹️ Cancelled.")
            self._set_status(AgentState.IDLE)
            return self.status

    def fail(self, reason):
        """Abort the current cycle on an unexpected error and return to IDLE."""
        with self._lock:
            self._cycle += 1
            self._pending_fix = None
            self.messages = [m for m in self.messages if not m.is_loading]
            self.post("assistant", f"❌ {reason}")
            self._set_status(AgentState.IDLE)
            return self.status

    def run(self, prompt, approve=None):
        """Drive a whole cycle.

        approve(status) -> bool is asked at each confirmable state; with no
        callback every step is confirmed. Stops when the agent is idle, the
        user declines, or fix generation fails twice in a row.
        """
        self.submit(prompt)
        fix_failures = 0
        while self.status.state in CONFIRMABLE_STATES:
            if approve is not None and not approve(self.status):
                self.cancel()
                break
            before = self.status.state
            self.confirm()
            if before == AgentState.ERROR_DETECTED and self.status.state == AgentState.ERROR_DETECTED:
                fix_failures += 1
                if fix_failures >= 2:
                    break
            else:
                fix_failures = 0
        return self.status

    # --- Versions and export -------------------------------------------------

    def restore_version(self, version_id):
        """Replace the live set with a snapshot. Returns False if the id is unknown."""
        with self._lock:
            if self.busy:
                raise AgentBusyError("Cannot restore a version while the agent is busy.")
            files = self.versions.restore(version_id)
            if files is None:
                return False
            entry = self.versions.get(version_id)
            self.files = files
            active = fileset.default_active_file(files)
            self.active_path = active.path if active else None
            self.view_mode = "code"
            self.post("assistant", f"⏪ Restored version: {entry.description}")
            return True

    def select_file(self, path):
        found = fileset.find_file(self.files, path)
        if found is not None:
            self.active_path = found.path
        return found

    def exportable_files(self):
        return fileset.strip_reserved(self.files)

    def export_zip(self):
        return fileset.export_zip(self.files)
