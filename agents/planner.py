"""Planner agent: streams a markdown implementation plan."""

import os

from config.defaults import DEFAULTS
from utils.llm import build_history, stream_llm

_PROMPT_FILE = os.path.join(os.path.dirname(__file__), "prompts", "planner.txt")


def _load_prompt():
    with open(_PROMPT_FILE) as f:
        return f.read()


class PlannerAgent:
    """Produces an implementation plan from a user request and prior turns."""

    name = "planner"

    def __init__(self, api_key=None):
        self.api_key = api_key

    def run(self, prompt: str, history: list, on_chunk=None) -> str:
        """Stream the plan; on_chunk receives the cumulative text. Returns the full plan."""
        messages = build_history(history)
        if messages and messages[-1]["role"] == "user":
            messages[-1]["content"] += "\n\n" + prompt
        else:
            messages.append({"role": "user", "content": prompt})

        return stream_llm(
            _load_prompt(),
            messages,
            on_chunk=on_chunk,
            temperature=DEFAULTS["plan_temperature"],
            api_key=self.api_key,
        )
