#!/usr/bin/env python3
"""VibePHP - agentic PHP app builder.

Usage:
    python main.py build --prompt "a todo list with categories"            # confirm each step
    python main.py build --prompt "..." --yes                              # auto-confirm
    python main.py build --prompt "..." --output ./todo-app --verbose      # write files
"""

import argparse
import logging
import sys

from agents.fixer import FixerAgent
from agents.generator import GeneratorAgent
from agents.planner import PlannerAgent
from agents.verifier import VerifierAgent
from core.files import write_files
from core.orchestrator import Orchestrator
from core.state import AgentState

_QUESTIONS = {
    AgentState.PLAN_READY: "Build this plan?",
    AgentState.ERROR_DETECTED: "Ask the AI for a fix?",
    AgentState.FIX_READY: "Apply this fix and re-verify?",
}


class _ConsoleReporter:
    """on_status observer: streams the plan and echoes new chat entries."""

    def __init__(self):
        self.agent = None
        self.shown = 0
        self.seen = 0

    def __call__(self, status):
        if status.state == AgentState.PLANNING:
            text = status.stream_content
            if len(text) > self.shown:
                sys.stdout.write(text[self.shown:])
                sys.stdout.flush()
                self.shown = len(text)
            return

        messages = self.agent.messages if self.agent else []
        for msg in messages[self.seen:]:
            # The plan itself was already streamed
            if msg.role == "assistant" and not msg.is_loading and msg.content != status.stream_content:
                print(f"\n{msg.content}")
        self.seen = len(messages)
        self.shown = 0


def _non_negative_int(value):
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"must be 0 or more, got {number}")
    return number


def _ask_user_approval(status):
    """Human-in-the-loop: ask whether to take the next step."""
    try:
        answer = input(f"\n{_QUESTIONS[status.state]} [y/N]: ").strip().lower()
    except (EOFError, KeyboardInterrupt):
        print()
        return False
    return answer in ("y", "yes")


def cmd_build(args):
    """Run one plan → build → verify → fix cycle."""
    reporter = _ConsoleReporter()
    agent = Orchestrator(
        planner=PlannerAgent(args.api_key),
        generator=GeneratorAgent(args.api_key),
        fixer=FixerAgent(args.api_key),
        verifier=VerifierAgent(url=args.executor_url),
        max_fix_attempts=args.max_fixes,
        on_status=reporter,
    )
    reporter.agent = agent
    reporter.seen = len(agent.messages)

    print(f"Session: {agent.session_id}\n")
    status = agent.run(args.prompt, approve=None if args.yes else _ask_user_approval)

    print(f"\nStatus:       {status.state.value}")
    print(f"Fix attempts: {status.fix_attempt}/{agent.max_fix_attempts}")
    if agent.preview_url:
        print(f"Preview:      {agent.preview_url}")
    files = agent.exportable_files()
    print(f"\n{len(files)} file(s):")
    for f in files:
        print(f"  {f.path}")

    if args.verbose:
        print("\nVersions:")
        for v in agent.versions.list():
            print(f"  {v.id}  {v.description}")

    if args.output:
        written = write_files(files, args.output)
        print(f"\nWrote {len(written)} file(s) to {args.output}")

    return 0 if status.state == AgentState.IDLE and agent.view_mode == "preview" else 1


def main():
    parser = argparse.ArgumentParser(
        prog="vibephp",
        description="AI-assisted PHP application builder",
    )
    subparsers = parser.add_subparsers(dest="command")

    build_parser = subparsers.add_parser("build", help="Plan, build and verify an app")
    build_parser.add_argument("--prompt", required=True, help="Natural language request")
    build_parser.add_argument("--yes", action="store_true",
                              help="Confirm every step without asking")
    build_parser.add_argument("--api-key", help="Anthropic API key (ANTHROPIC_API_KEY wins if set)")
    build_parser.add_argument("--executor-url", help="PHP executor endpoint")
    build_parser.add_argument("--max-fixes", type=_non_negative_int, default=None,
                              help="Auto-fix attempts before giving up (default: 3)")
    build_parser.add_argument("--output", help="Write the generated files to this directory")
    build_parser.add_argument("--verbose", action="store_true",
                              help="Debug logging and version list")

    args = parser.parse_args()

    if args.command == "build":
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
        )
        sys.exit(cmd_build(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
