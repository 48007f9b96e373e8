#!/usr/bin/env python3
"""VibePHP - JSON API server for the agentic PHP builder."""

import io
import logging
import os
import threading
import time

from flask import Flask, jsonify, request, send_file

from agents.fixer import FixerAgent
from agents.generator import GeneratorAgent
from agents.planner import PlannerAgent
from agents.verifier import VerifierAgent
from core.orchestrator import AgentBusyError, InvalidTransitionError, Orchestrator
from core.state import CONFIRMABLE_STATES

log = logging.getLogger(__name__)

app = Flask(__name__)

# Live agent sessions keyed by session id: {id: {"agent": ..., "touched": timestamp}}
_sessions = {}
_sessions_lock = threading.Lock()
_MAX_SESSIONS = 50  # prevent unbounded memory growth
_SESSION_TTL = 3600  # expire idle sessions after 1 hour


def _cleanup_sessions():
    """Remove expired sessions. Called under _sessions_lock."""
    now = time.time()
    expired = [sid for sid, s in _sessions.items() if now - s["touched"] > _SESSION_TTL]
    for sid in expired:
        del _sessions[sid]
    # If still over limit, remove least recently used
    if len(_sessions) > _MAX_SESSIONS:
        by_age = sorted(_sessions.items(), key=lambda x: x[1]["touched"])
        for sid, _ in by_age[:len(_sessions) - _MAX_SESSIONS]:
            del _sessions[sid]


def create_agent(api_key=None):
    return Orchestrator(
        planner=PlannerAgent(api_key),
        generator=GeneratorAgent(api_key),
        fixer=FixerAgent(api_key),
        verifier=VerifierAgent(),
    )


def _store_session(agent):
    """Store an agent under its executor session id and return the id."""
    sid = agent.session_id
    with _sessions_lock:
        _cleanup_sessions()
        _sessions[sid] = {"agent": agent, "touched": time.time()}
    return sid


def _get_agent(session_id):
    """Get the agent for a session id, or None if not found/expired."""
    with _sessions_lock:
        session = _sessions.get(session_id)
        if not session:
            return None
        if time.time() - session["touched"] > _SESSION_TTL:
            _sessions.pop(session_id, None)
            return None
        session["touched"] = time.time()
        return session["agent"]


def _spawn(agent, step, *args):
    """Run a long agent step on a worker thread; clients poll for status."""
    def worker():
        try:
            step(*args)
        except Exception as e:
            log.exception("Agent step crashed")
            agent.fail(f"Unexpected error: {e}")

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()
    return thread


def _details_to_dict(details):
    if details is None:
        return None
    return {
        "type": details.type,
        "file": details.file,
        "line": details.line,
        "code": details.code,
        "message": details.message,
        "stackTrace": details.stack_trace,
        "suggestion": details.suggestion,
    }


def _status_to_dict(status):
    return {
        "state": status.state.value,
        "message": status.message,
        "streamContent": status.stream_content,
        "error": status.error,
        "errorDetails": _details_to_dict(status.error_details),
        "fixAttempt": status.fix_attempt,
    }


def _agent_to_dict(agent):
    """Serialize an agent session to a JSON-safe dict."""
    return {
        "session_id": agent.session_id,
        "status": _status_to_dict(agent.status),
        "can_confirm": agent.status.state in CONFIRMABLE_STATES,
        "max_fix_attempts": agent.max_fix_attempts,
        "messages": [
            {
                "id": m.id,
                "role": m.role,
                "content": m.content,
                "timestamp": m.timestamp,
                "isLoading": m.is_loading,
            }
            for m in agent.messages
        ],
        "files": [{"path": f.path, "language": f.language} for f in agent.exportable_files()],
        "active_file": agent.active_path,
        "view_mode": agent.view_mode,
        "preview_url": agent.preview_url,
        "versions": len(agent.versions),
    }


def _lookup(session_id):
    agent = _get_agent(session_id)
    if agent is None:
        return None, (jsonify({"error": "Session not found or expired"}), 404)
    return agent, None


@app.route("/api/sessions", methods=["POST"])
def api_create_session():
    data = request.get_json(silent=True) or {}
    agent = create_agent(api_key=(data.get("api_key") or "").strip() or None)
    _store_session(agent)
    return jsonify(_agent_to_dict(agent)), 201


@app.route("/api/sessions/<session_id>")
def api_session(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    return jsonify(_agent_to_dict(agent))


@app.route("/api/sessions/<session_id>/prompt", methods=["POST"])
def api_prompt(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    prompt = (data.get("prompt") or "").strip()
    if not prompt:
        return jsonify({"error": "Missing prompt"}), 400
    try:
        step = agent.begin(prompt)
    except AgentBusyError as e:
        return jsonify({"error": str(e)}), 409

    _spawn(agent, step)
    return jsonify(_agent_to_dict(agent)), 202


@app.route("/api/sessions/<session_id>/confirm", methods=["POST"])
def api_confirm(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    try:
        step = agent.begin_confirm()
    except InvalidTransitionError as e:
        return jsonify({"error": str(e)}), 409

    _spawn(agent, step)
    return jsonify(_agent_to_dict(agent)), 202


@app.route("/api/sessions/<session_id>/cancel", methods=["POST"])
def api_cancel(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    agent.cancel()
    return jsonify(_agent_to_dict(agent))


@app.route("/api/sessions/<session_id>/files/<path:path>")
def api_file(session_id, path):
    agent, err = _lookup(session_id)
    if err:
        return err
    found = next((f for f in agent.exportable_files() if f.path == path), None)
    if found is None:
        return jsonify({"error": "File not found"}), 404
    agent.select_file(found.path)
    return jsonify({"path": found.path, "language": found.language, "content": found.content})


@app.route("/api/sessions/<session_id>/versions")
def api_versions(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    return jsonify([
        {
            "id": v.id,
            "timestamp": v.timestamp,
            "description": v.description,
            "files": [f.path for f in v.files],
            "error": _details_to_dict(v.error),
        }
        for v in agent.versions.list()
    ])


@app.route("/api/sessions/<session_id>/versions/<version_id>/restore", methods=["POST"])
def api_restore(session_id, version_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    try:
        restored = agent.restore_version(version_id)
    except AgentBusyError as e:
        return jsonify({"error": str(e)}), 409
    if not restored:
        return jsonify({"error": "Version not found"}), 404
    return jsonify(_agent_to_dict(agent))


@app.route("/api/sessions/<session_id>/download")
def api_download(session_id):
    agent, err = _lookup(session_id)
    if err:
        return err
    return send_file(
        io.BytesIO(agent.export_zip()),
        mimetype="application/zip",
        as_attachment=True,
        download_name="vibephp-app.zip",
    )


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(message)s")
    port = int(os.environ.get("PORT", 5001))
    print(f"VibePHP running at http://localhost:{port}")
    app.run(debug=False, port=port, threaded=True)
