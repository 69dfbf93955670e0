"""Agent profiles and command construction for gumloop."""

from __future__ import annotations

from gumloop.agents.command import build_command
from gumloop.agents.registry import (
    BUILTIN_PROFILES,
    AgentProfile,
    AgentRegistry,
    Dialect,
    PromptStyle,
    create_registry,
)

__all__ = [
    "AgentProfile",
    "AgentRegistry",
    "BUILTIN_PROFILES",
    "Dialect",
    "PromptStyle",
    "build_command",
    "create_registry",
]
