"""Tests for the CLI in main.py. Agent clients patched, no network."""

import argparse
from unittest.mock import patch

import pytest

import main
from agents.generator import GeneratedFiles
from agents.verifier import VerificationResult
from core.state import AgentState, AgentStatus, FileEntry


def _args(**overrides):
    values = dict(prompt="a guestbook", yes=True, api_key=None, executor_url=None,
                  max_fixes=None, output=None, verbose=False)
    values.update(overrides)
    return argparse.Namespace(**values)


def _plan(prompt, history, on_chunk=None):
    on_chunk("# Plan")
    on_chunk("# Plan\n- index.php")
    return "# Plan\n- index.php"


def _patched_clients(verify_result):
    planner = patch("main.PlannerAgent")
    generator = patch("main.GeneratorAgent")
    fixer = patch("main.FixerAgent")
    verifier = patch("main.VerifierAgent")
    mocks = [p.start() for p in (planner, generator, fixer, verifier)]
    mocks[0].return_value.run.side_effect = _plan
    mocks[1].return_value.run.return_value = GeneratedFiles(
        explanation="Guestbook",
        files=[
            FileEntry(path="index.php", content="<?php echo 'hi';", language="php"),
            FileEntry(path="css/style.css", content="body{}", language="css"),
            FileEntry(path="db_config.php", content="<?php", language="php"),
        ],
    )
    mocks[3].return_value.session_id = "sess_cli"
    mocks[3].return_value.run.return_value = verify_result
    return (planner, generator, fixer, verifier), mocks


def test_build_auto_confirm_success(tmp_path, capsys):
    patchers, mocks = _patched_clients(VerificationResult(success=True, url="http://preview/sess_cli"))
    try:
        out_dir = tmp_path / "app"
        code = main.cmd_build(_args(output=str(out_dir), verbose=True))
    finally:
        for p in patchers:
            p.stop()

    assert code == 0
    out = capsys.readouterr().out
    assert "# Plan\n- index.php" in out
    assert out.count("# Plan\n- index.php") == 1
    assert "Status:       IDLE" in out
    assert "Preview:      http://preview/sess_cli" in out
    assert "Working version" in out
    assert (out_dir / "index.php").read_text() == "<?php echo 'hi';"
    assert (out_dir / "css" / "style.css").exists()
    assert not (out_dir / "db_config.php").exists()
    mocks[0].assert_called_once_with(None)


def test_build_failure_exit_code(capsys):
    failed = VerificationResult(success=False, error="Division by zero in /www/index.php on line 1",
                                raw={"success": False})
    patchers, mocks = _patched_clients(failed)
    try:
        with patch("main._ask_user_approval", side_effect=[True, False]):
            code = main.cmd_build(_args(yes=False))
    finally:
        for p in patchers:
            p.stop()

    assert code == 1
    out = capsys.readouterr().out
    assert "Diagnostics failed" in out
    assert "Status:       IDLE" in out
    mocks[2].return_value.run.assert_not_called()


def test_ask_user_approval_yes():
    with patch("builtins.input", return_value=" Y "):
        assert main._ask_user_approval(AgentStatus(state=AgentState.PLAN_READY)) is True


def test_ask_user_approval_default_no():
    with patch("builtins.input", return_value=""):
        assert main._ask_user_approval(AgentStatus(state=AgentState.FIX_READY)) is False


def test_ask_user_approval_eof():
    with patch("builtins.input", side_effect=EOFError):
        assert main._ask_user_approval(AgentStatus(state=AgentState.ERROR_DETECTED)) is False


def test_max_fixes_zero_reaches_orchestrator(monkeypatch):
    monkeypatch.setattr("sys.argv", ["vibephp", "build", "--prompt", "x", "--max-fixes", "0"])
    with patch("main.cmd_build", return_value=0) as mock_build:
        with pytest.raises(SystemExit) as exc_info:
            main.main()
    assert exc_info.value.code == 0
    assert mock_build.call_args.args[0].max_fixes == 0


def test_max_fixes_negative_rejected(monkeypatch, capsys):
    monkeypatch.setattr("sys.argv", ["vibephp", "build", "--prompt", "x", "--max-fixes", "-1"])
    with patch("main.cmd_build") as mock_build:
        with pytest.raises(SystemExit) as exc_info:
            main.main()
    assert exc_info.value.code == 2
    assert "must be 0 or more" in capsys.readouterr().err
    mock_build.assert_not_called()
