"""Verifier agent: deploys the file set to the remote PHP executor as a dry run."""

import logging
import os
from dataclasses import dataclass, field

import requests

from config.defaults import DEFAULTS
from core.files import to_payload
from utils.llm import preview
from utils.session import new_session_id

log = logging.getLogger(__name__)


class VerificationError(RuntimeError):
    """The executor could not be reached or did not answer with JSON."""


@dataclass
class VerificationResult:
    success: bool
    error: str | None = None
    url: str | None = None
    raw: dict = field(default_factory=dict)


class VerifierAgent:
    """POSTs {files, sessionId, dryRun} to the executor.

    The session id is created once per verifier and reused on every call
    so the executor can keep per-session state (the SQLite database)
    between dry runs.
    """

    name = "verifier"

    def __init__(self, url=None, session_id=None, timeout=None):
        self.url = url or os.environ.get("VIBEPHP_EXECUTOR_URL") or DEFAULTS["executor_url"]
        self.session_id = session_id or new_session_id()
        self.timeout = timeout or DEFAULTS["request_timeout"]

    def run(self, files: list) -> VerificationResult:
        body = {"files": to_payload(files), "sessionId": self.session_id, "dryRun": True}
        log.info("Dry run: %d file(s) to %s (%s)", len(body["files"]), self.url, self.session_id)

        try:
            resp = requests.post(self.url, json=body, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise VerificationError(f"Could not reach the PHP executor: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise VerificationError(
                f"PHP executor returned a non-JSON response (HTTP {resp.status_code}):\n"
                f"{preview(resp.text)}"
            ) from e
        if not isinstance(data, dict):
            raise VerificationError(f"PHP executor returned unexpected JSON: {preview(str(data))}")

        if data.get("success"):
            return VerificationResult(success=True, url=data.get("url"), raw=data)

        error = data.get("error") or data.get("message") or f"Dry run failed (HTTP {resp.status_code})"
        log.info("Dry run failed: %s", preview(str(error), 120))
        return VerificationResult(success=False, error=str(error), raw=data)
