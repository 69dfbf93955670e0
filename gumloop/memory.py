"""Session memory persisted between runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import yaml

from gumloop.logging import get_logger

__all__ = ["CommitRecord", "SessionMemory", "DEFAULT_FILE_NAME", "MAX_COMMIT_LOG"]

logger = get_logger(__name__)

DEFAULT_FILE_NAME = ".gumloop-memory.yaml"
MAX_COMMIT_LOG = 20
_HEADER = '# gumloop session memory (auto-generated, safe to edit "remaining" field)\n\n'


@dataclass(frozen=True)
class CommitRecord:
    hash: str
    message: str


@dataclass
class SessionMemory:
    """What happened during a run, kept so the next run can pick up from it."""

    started: Optional[datetime] = None
    branch: str = ""
    agent: str = ""
    iterations: int = 0
    commits: int = 0
    exit_reason: str = ""
    commit_log: list[CommitRecord] = field(default_factory=list)
    remaining: str = ""

    @classmethod
    def start(cls, *, branch: str, agent: str) -> "SessionMemory":
        return cls(started=datetime.now(timezone.utc), branch=branch, agent=agent)

    @classmethod
    def load(cls, path: Path | str = DEFAULT_FILE_NAME) -> Optional["SessionMemory"]:
        """Read a memory file.

        Returns ``None`` when the file does not exist and an empty memory when
        it cannot be parsed, so a damaged file never blocks a run.
        """

        memory_path = Path(path)
        if not memory_path.exists():
            return None
        try:
            data = yaml.safe_load(memory_path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            logger.warning("ignoring malformed session memory %s: %s", memory_path, exc)
            return cls()
        if not isinstance(data, Mapping):
            return cls()
        try:
            return cls.from_mapping(data)
        except (TypeError, ValueError) as exc:
            logger.warning("ignoring malformed session memory %s: %s", memory_path, exc)
            return cls()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SessionMemory":
        started = data.get("started")
        if isinstance(started, str):
            started = datetime.fromisoformat(started)
        elif not isinstance(started, datetime):
            started = None
        log = [
            CommitRecord(hash=str(entry.get("hash", "")), message=str(entry.get("message", "")))
            for entry in data.get("commit_log") or []
            if isinstance(entry, Mapping)
        ]
        return cls(
            started=started,
            branch=str(data.get("branch") or ""),
            agent=str(data.get("agent") or ""),
            iterations=int(data.get("iterations") or 0),
            commits=int(data.get("commits") or 0),
            exit_reason=str(data.get("exit_reason") or ""),
            commit_log=log,
            remaining=str(data.get("remaining") or ""),
        )

    def to_mapping(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "started": self.started.isoformat() if self.started else None,
            "branch": self.branch,
            "agent": self.agent,
            "iterations": self.iterations,
            "commits": self.commits,
            "exit_reason": self.exit_reason,
            "commit_log": [{"hash": c.hash, "message": c.message} for c in self.commit_log],
        }
        if self.remaining:
            payload["remaining"] = self.remaining
        return payload

    def save(self, path: Path | str = DEFAULT_FILE_NAME) -> None:
        memory_path = Path(path)
        memory_path.parent.mkdir(parents=True, exist_ok=True)
        _exclude_from_git(memory_path)
        body = yaml.safe_dump(self.to_mapping(), sort_keys=False, allow_unicode=True, indent=2)
        memory_path.write_text(_HEADER + body, encoding="utf-8")

    def record_iteration(self, commits_made: int, new_commits: Iterable[CommitRecord] = ()) -> None:
        self.iterations += 1
        self.commits += commits_made
        self.commit_log = (list(new_commits) + self.commit_log)[:MAX_COMMIT_LOG]

    def set_exit(self, reason: str) -> None:
        self.exit_reason = reason

    def to_prompt_context(self) -> str:
        """Render the session as a block to prepend to the next prompt."""

        if self.iterations == 0:
            return ""

        lines = [
            "--- PREVIOUS SESSION ---",
            f"Last session: {self.iterations} iterations, {self.commits} commits on branch {self.branch}",
            f"Agent: {self.agent} | Exited: {self.exit_reason}",
        ]
        if self.commit_log:
            lines.append("")
            lines.append("Commits made:")
            lines.extend(f"- {c.hash} {c.message}" for c in self.commit_log)
        if self.remaining.strip():
            lines.append("")
            lines.append(f"Note: {self.remaining.strip()}")
        lines.append("--- END PREVIOUS SESSION ---")
        return "\n".join(lines) + "\n"


def _exclude_from_git(memory_path: Path) -> None:
    # Keep the memory file out of `git status`; it must not look like agent work.
    git_dir = memory_path.resolve().parent / ".git"
    if not git_dir.is_dir():
        return

    exclude_path = git_dir / "info" / "exclude"
    entry = memory_path.name
    try:
        exclude_path.parent.mkdir(parents=True, exist_ok=True)
        existing = exclude_path.read_text(encoding="utf-8") if exclude_path.exists() else ""
        if entry in existing.splitlines():
            return
        with exclude_path.open("a", encoding="utf-8") as handle:
            if existing and not existing.endswith("\n"):
                handle.write("\n")
            handle.write(f"{entry}\n")
    except OSError as exc:
        logger.warning("unable to add %s to %s: %s", entry, exclude_path, exc)
