"""Agent profiles and the immutable registry that resolves them."""

from __future__ import annotations

import difflib
import shutil
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Optional

from gumloop.errors import UnknownAgentError


class PromptStyle(Enum):
    """How the prompt text reaches the agent process."""

    ARGUMENT = "arg"
    PIPE = "pipe"
    STREAM = "stream"
    POSITIONAL_MODEL = "ollama"


class Dialect(Enum):
    """Output format an agent writes to stdout."""

    STREAM_JSON = "stream-json"
    CODEX_JSON = "codex-json"
    PLAIN = "plain"


@dataclass(frozen=True)
class AgentProfile:
    """Immutable description of a command-line coding agent."""

    id: str
    name: str
    command: str
    check_command: str
    autonomous_flags: tuple[str, ...] = ()
    interactive_flags: tuple[str, ...] = ()
    model_flag: str = ""
    prompt_style: PromptStyle = PromptStyle.ARGUMENT
    dialect: Dialect = Dialect.PLAIN

    @property
    def command_tokens(self) -> tuple[str, ...]:
        return tuple(self.command.split())

    def is_installed(self) -> bool:
        executable = self.check_command or next(iter(self.command_tokens), "")
        return bool(executable) and shutil.which(executable) is not None


CLAUDE = AgentProfile(
    id="claude",
    name="Claude Code",
    command="claude",
    check_command="claude",
    autonomous_flags=(
        "-p",
        "--dangerously-skip-permissions",
        "--verbose",
        "--output-format",
        "stream-json",
    ),
    interactive_flags=("-p", "--verbose", "--output-format", "stream-json"),
    model_flag="--model",
    prompt_style=PromptStyle.STREAM,
    dialect=Dialect.STREAM_JSON,
)

CODEX = AgentProfile(
    id="codex",
    name="OpenAI Codex",
    command="codex exec",
    check_command="codex",
    autonomous_flags=("--full-auto", "--json"),
    interactive_flags=("--json",),
    model_flag="--model",
    prompt_style=PromptStyle.ARGUMENT,
    dialect=Dialect.CODEX_JSON,
)

GEMINI = AgentProfile(
    id="gemini",
    name="Google Gemini",
    command="gemini",
    check_command="gemini",
    autonomous_flags=("-p", "--yolo", "--output-format", "text"),
    interactive_flags=("-p", "--output-format", "text"),
    model_flag="--model",
)

OPENCODE = AgentProfile(
    id="opencode",
    name="OpenCode",
    command="opencode",
    check_command="opencode",
    # -q hides the spinner; the model comes from ~/.opencode.json.
    autonomous_flags=("-p", "-q", "-f", "text"),
    interactive_flags=("-p", "-f", "text"),
)

CURSOR = AgentProfile(
    id="cursor",
    name="Cursor Agent",
    command="cursor-agent",
    check_command="cursor-agent",
    autonomous_flags=("-p", "--force", "--output-format", "text"),
    model_flag="--model",
)

OLLAMA = AgentProfile(
    id="ollama",
    name="Ollama",
    command="ollama run",
    check_command="ollama",
    prompt_style=PromptStyle.POSITIONAL_MODEL,
)

BUILTIN_PROFILES: tuple[AgentProfile, ...] = (CLAUDE, CODEX, GEMINI, OPENCODE, CURSOR, OLLAMA)


class AgentRegistry(Mapping[str, AgentProfile]):
    """Read-only mapping of agent identifiers to profiles."""

    def __init__(self, profiles: Mapping[str, AgentProfile]) -> None:
        self._profiles = MappingProxyType(dict(profiles))

    def __getitem__(self, agent_id: str) -> AgentProfile:
        return self._profiles[agent_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def ids(self) -> list[str]:
        return sorted(self._profiles)

    def resolve(self, agent_id: str) -> AgentProfile:
        """Return the profile for ``agent_id`` or raise :class:`UnknownAgentError`."""

        profile = self._profiles.get(agent_id)
        if profile is not None:
            return profile
        available = self.ids()
        raise UnknownAgentError(agent_id, available, _closest_match(agent_id, available))


def _closest_match(candidate: str, options: list[str]) -> Optional[str]:
    if not candidate:
        return None
    matches = difflib.get_close_matches(candidate, options, n=1, cutoff=0.6)
    return matches[0] if matches else None


def create_registry(profiles: Iterable[AgentProfile] = BUILTIN_PROFILES) -> AgentRegistry:
    """Build the agent registry.

    Called once while the CLI boots; the result is passed explicitly to the
    components that need it. Duplicate identifiers are rejected.
    """

    collected: dict[str, AgentProfile] = {}
    for profile in profiles:
        if profile.id in collected:
            raise ValueError(f"duplicate agent profile '{profile.id}'")
        collected[profile.id] = profile
    return AgentRegistry(collected)


__all__ = [
    "AgentProfile",
    "AgentRegistry",
    "BUILTIN_PROFILES",
    "Dialect",
    "PromptStyle",
    "create_registry",
]
