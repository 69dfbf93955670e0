"""Adapter for Codex ``--json`` output."""

from __future__ import annotations

import json

from gumloop.adapters.base import OutputAdapter
from gumloop.adapters.events import AgentError, AssistantMessage, EventSink, ToolUse
from gumloop.logging import get_logger

logger = get_logger(__name__)

_KNOWN_FIELDS = ("type", "content", "tool", "text", "message", "error")
# First non-empty field wins.
_TEXT_FIELDS = ("content", "text", "message")


class CodexJsonAdapter(OutputAdapter):
    """Parse loosely-typed NDJSON records.

    The producer does not publish a schema, so anything that is not a JSON
    object with string-valued known fields is forwarded verbatim as an
    assistant message rather than dropped. An ``error`` field suppresses
    every other event on its line.
    """

    label = "codex-json"

    def handle_line(self, line: str, emit: EventSink) -> None:
        if not line:
            return

        try:
            record = json.loads(line)
        except json.JSONDecodeError as exc:
            logger.debug("treating unparseable %s line as text: %s", self.label, exc)
            record = None

        if not _is_record(record):
            emit(AssistantMessage(text=line))
            return

        error = record.get("error")
        if error:
            emit(AgentError(message=error))
            return

        tool = record.get("tool")
        if tool:
            emit(ToolUse(name=tool))

        for field in _TEXT_FIELDS:
            text = record.get(field)
            if text:
                emit(AssistantMessage(text=text))
                break


def _is_record(record: object) -> bool:
    if not isinstance(record, dict):
        return False
    for key in _KNOWN_FIELDS:
        value = record.get(key)
        if value is not None and not isinstance(value, str):
            logger.debug("treating codex-json line as text: '%s' is %s", key, type(value).__name__)
            return False
    return True


__all__ = ["CodexJsonAdapter"]
