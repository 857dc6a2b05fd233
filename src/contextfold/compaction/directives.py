"""Active-workflow directive extraction.

The first message of a task may contain ``<command ...>...</command>`` blocks
(slash-command workflows the user started). They must survive every
condensation, so they are copied verbatim into each summary message inside a
``<system-reminder>`` block.
"""

from __future__ import annotations

import re

from contextfold.models.message import AnyMessage, Message

_COMMAND_RE = re.compile(r"<command[^>]*>[\s\S]*?</command>")

_ACTIVE_WORKFLOWS_TEMPLATE = (
    "<system-reminder>\n"
    "## Active Workflows\n"
    "The following directives must be maintained across all future condensings:\n"
    "{commands}\n"
    "</system-reminder>"
)


def extract_command_blocks(message: AnyMessage) -> str:
    """
    Return every ``<command>`` block in *message*, newline-joined.

    Only text content is searched; list content has its text blocks joined
    with newlines first.

    Returns:
        The matched blocks, or an empty string when there are none.
    """
    if not isinstance(message, Message):
        return ""
    matches = _COMMAND_RE.findall(message.text_content())
    return "\n".join(matches)


def active_workflows_reminder(commands: str) -> str:
    """Wrap extracted command blocks in the active-workflows reminder."""
    return _ACTIVE_WORKFLOWS_TEMPLATE.format(commands=commands)
