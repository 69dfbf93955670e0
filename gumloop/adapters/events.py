"""Normalized events produced by output adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union


@dataclass(frozen=True)
class ToolUse:
    """The agent invoked a tool (``Read``, ``Edit``, ``Bash``...)."""

    name: str


@dataclass(frozen=True)
class AssistantMessage:
    """Text written by the agent."""

    text: str


@dataclass(frozen=True)
class AgentError:
    """An error the agent reported in its own output."""

    message: str


Event = Union[ToolUse, AssistantMessage, AgentError]
EventSink = Callable[[Event], None]

__all__ = ["AgentError", "AssistantMessage", "Event", "EventSink", "ToolUse"]
