"""Adapter for agents that print plain text."""

from __future__ import annotations

from gumloop.adapters.base import OutputAdapter
from gumloop.adapters.events import AssistantMessage, EventSink


class PassthroughAdapter(OutputAdapter):
    """Forward every line, blank ones included, as an assistant message."""

    label = "plain text"

    def handle_line(self, line: str, emit: EventSink) -> None:
        emit(AssistantMessage(text=line))


__all__ = ["PassthroughAdapter"]
