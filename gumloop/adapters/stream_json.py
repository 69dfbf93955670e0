"""Adapter for newline-delimited ``stream-json`` output (Claude Code)."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from gumloop.adapters.base import OutputAdapter
from gumloop.adapters.events import AssistantMessage, Event, EventSink, ToolUse
from gumloop.logging import get_logger

logger = get_logger(__name__)


class _ShapeError(ValueError):
    pass


class StreamJsonAdapter(OutputAdapter):
    """Parse records discriminated by ``type``.

    ``assistant`` records yield one message per non-empty text block,
    ``tool_use`` records yield the tool name and ``stream_event`` records
    yield ``text_delta`` fragments. ``result`` repeats the final assistant
    message and is dropped. A line that does not parse, or whose known
    fields have the wrong type anywhere in the record, is logged and
    skipped as a whole.
    """

    label = "stream-json"

    def handle_line(self, line: str, emit: EventSink) -> None:
        if not line:
            return

        try:
            events = self._collect(_as_mapping(json.loads(line)))
        except (json.JSONDecodeError, _ShapeError) as exc:
            logger.warning(
                "failed to parse %s record: %s (line: %s)",
                self.label,
                exc,
                line,
                extra={"metadata": {"dialect": self.label}},
            )
            return

        for event in events:
            emit(event)

    def _collect(self, record: Mapping[str, Any]) -> list[Event]:
        # Every known field is checked before anything is emitted.
        kind = _string(record, "type")
        name = _string(record, "name")
        blocks = [_text_block(block) for block in _list(_mapping(record, "message"), "content")]
        delta = _mapping(_mapping(record, "event"), "delta")
        delta_type, delta_text = _string(delta, "type"), _string(delta, "text")

        if kind == "assistant":
            return [
                AssistantMessage(text=text)
                for block_type, text in blocks
                if block_type == "text" and text
            ]
        if kind == "tool_use":
            return [ToolUse(name=name)] if name else []
        if kind == "result":
            return []
        if kind == "stream_event":
            if delta_type == "text_delta" and delta_text:
                return [AssistantMessage(text=delta_text)]
            return []

        logger.debug("ignoring unknown %s event type: %s", self.label, kind)
        return []


def _as_mapping(value: Any) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise _ShapeError(f"expected an object, got {type(value).__name__}")
    return value


def _field(record: Mapping[str, Any], key: str, expected: type, default: Any) -> Any:
    value = record.get(key)
    if value is None:
        return default
    if not isinstance(value, expected):
        raise _ShapeError(f"'{key}' must be {expected.__name__}, got {type(value).__name__}")
    return value


def _string(record: Mapping[str, Any], key: str) -> str:
    return _field(record, key, str, "")


def _mapping(record: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    return _field(record, key, Mapping, {})


def _list(record: Mapping[str, Any], key: str) -> list:
    return _field(record, key, list, [])


def _text_block(block: Any) -> tuple[str, str]:
    block = _as_mapping(block)
    return _string(block, "type"), _string(block, "text")


__all__ = ["StreamJsonAdapter"]
