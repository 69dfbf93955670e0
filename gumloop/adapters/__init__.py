"""Output adapters that normalize agent output into events."""

from __future__ import annotations

from gumloop.adapters.base import OutputAdapter
from gumloop.adapters.codex_json import CodexJsonAdapter
from gumloop.adapters.events import AgentError, AssistantMessage, Event, EventSink, ToolUse
from gumloop.adapters.passthrough import PassthroughAdapter
from gumloop.adapters.stream_json import StreamJsonAdapter
from gumloop.agents.registry import Dialect

_ADAPTERS: dict[Dialect, type[OutputAdapter]] = {
    Dialect.STREAM_JSON: StreamJsonAdapter,
    Dialect.CODEX_JSON: CodexJsonAdapter,
    Dialect.PLAIN: PassthroughAdapter,
}


def adapter_for(dialect: Dialect) -> OutputAdapter:
    """Return a fresh adapter for an output dialect."""

    return _ADAPTERS[dialect]()


__all__ = [
    "AgentError",
    "AssistantMessage",
    "CodexJsonAdapter",
    "Event",
    "EventSink",
    "OutputAdapter",
    "PassthroughAdapter",
    "StreamJsonAdapter",
    "ToolUse",
    "adapter_for",
]
