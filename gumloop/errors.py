"""Exception hierarchy shared across gumloop components."""

from __future__ import annotations


class GumloopError(Exception):
    """Base class for all gumloop errors."""


class ConfigError(GumloopError):
    """Raised when configuration is missing or invalid before a run starts."""


class UnknownAgentError(ConfigError):
    """Raised when an agent identifier is not present in the registry."""

    def __init__(self, agent_id: str, available: list[str], suggestion: str | None = None) -> None:
        self.agent_id = agent_id
        self.available = list(available)
        self.suggestion = suggestion
        message = f"unknown agent '{agent_id}' (available: {', '.join(self.available)})"
        if suggestion:
            message += f". Did you mean '{suggestion}'?"
        super().__init__(message)


class SafetyError(GumloopError):
    """Raised when gumloop refuses to operate in the current directory."""

    def __init__(self, message: str, *, exit_code: int = 2) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class GitError(GumloopError):
    """Raised when a git query fails."""


class AgentLaunchError(GumloopError):
    """Raised when the agent subprocess cannot be started."""


class OutputReadError(GumloopError):
    """Raised by an output adapter when the agent stream cannot be read."""


class VerificationError(GumloopError):
    """Raised when the configured verification command exits non-zero."""

    def __init__(self, command: str, returncode: int) -> None:
        super().__init__(f"verification failed: '{command}' exited with status {returncode}")
        self.command = command
        self.returncode = returncode


class CommitCountAnomaly(GumloopError):
    """Raised when the commit count decreased across an iteration."""

    def __init__(self, before: int, after: int) -> None:
        super().__init__(
            f"commit count went from {before} to {after}; history was rewritten during the iteration"
        )
        self.before = before
        self.after = after


__all__ = [
    "AgentLaunchError",
    "CommitCountAnomaly",
    "ConfigError",
    "GitError",
    "GumloopError",
    "OutputReadError",
    "SafetyError",
    "UnknownAgentError",
    "VerificationError",
]
