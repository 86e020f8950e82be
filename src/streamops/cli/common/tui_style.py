"""Questionary / prompt_toolkit theme for streamops.

Questionary uses prompt_toolkit under the hood. This module defines the
styles of the two prompts streamops shows: application selection and
cancel confirmation.
"""

from __future__ import annotations

from prompt_toolkit.styles import Style

QUESTIONARY_STYLE_SELECT = Style.from_dict(
    {
        "question": "bold ansibrightcyan",
        "answer": "bold ansibrightgreen",
        "pointer": "bold ansibrightgreen",
        "highlighted": "bold ansibrightgreen",
        "instruction": "ansibrightblack",
    }
)

QUESTIONARY_STYLE_CONFIRM = Style.from_dict(
    {
        "question": "bold ansibrightred",
        "answer": "bold ansibrightred",
        "instruction": "ansibrightblack",
    }
)
