"""Prompting and reply interpretation package."""

from pocket_ledger.agents.interpreter import extract_json_span, flatten, interpret
from pocket_ledger.agents.prompt import ACTIONS, compile_prompt

__all__ = [
    "ACTIONS",
    "compile_prompt",
    "extract_json_span",
    "flatten",
    "interpret",
]
