"""Git queries used to measure agent progress."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from gumloop.errors import GitError
from gumloop.logging import get_logger, log_action

logger = get_logger(__name__)

_EMPTY_HISTORY_MARKERS = (
    "does not have any commits yet",
    "bad revision",
    "unknown revision",
)


@dataclass(frozen=True)
class ChangeCounts:
    """Working-tree changes grouped the way ``git status`` reports them."""

    modified: int = 0
    staged: int = 0
    untracked: int = 0

    @property
    def any(self) -> bool:
        return bool(self.modified or self.staged or self.untracked)


@dataclass(frozen=True)
class CommitInfo:
    hash: str
    message: str


def classify_status(porcelain: str) -> ChangeCounts:
    """Count paths in ``git status --porcelain`` output.

    ``XY path``: X is the index status and Y the work-tree status. A partially
    staged file counts as both staged and modified; ``??`` is untracked.
    """

    modified = staged = untracked = 0
    for line in porcelain.splitlines():
        if len(line) < 3:
            continue
        code = line[:2]
        if code == "??":
            untracked += 1
            continue
        if code[0] not in (" ", "?"):
            staged += 1
        if code[1] not in (" ", "?"):
            modified += 1
    return ChangeCounts(modified=modified, staged=staged, untracked=untracked)


class GitRepository:
    """Thin wrapper around the ``git`` executable for one working directory."""

    def __init__(self, root: Optional[Path | str] = None) -> None:
        self.root = Path(root) if root is not None else Path.cwd()

    def _run(self, *args: str) -> subprocess.CompletedProcess[str]:
        command = ["git", *args]
        try:
            return subprocess.run(
                command,
                cwd=self.root,
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise GitError(f"git not available: {exc}") from exc

    def _output(self, *args: str) -> str:
        result = self._run(*args)
        if result.returncode != 0:
            detail = (result.stderr or result.stdout or "").strip()
            raise GitError(f"git {' '.join(args)} failed: {detail or 'no diagnostics'}")
        return result.stdout

    def is_inside_work_tree(self) -> bool:
        try:
            result = self._run("rev-parse", "--is-inside-work-tree")
        except GitError:
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def current_branch(self) -> str:
        result = self._run("symbolic-ref", "--short", "HEAD")
        if result.returncode == 0 and result.stdout.strip():
            return result.stdout.strip()
        # Detached HEAD.
        return self._output("rev-parse", "--abbrev-ref", "HEAD").strip()

    def count_commits(self) -> int:
        """Return the number of commits reachable from HEAD (0 for a new repository)."""

        result = self._run("rev-list", "--count", "HEAD")
        if result.returncode != 0:
            stderr = result.stderr or ""
            if any(marker in stderr for marker in _EMPTY_HISTORY_MARKERS):
                return 0
            raise GitError(f"failed to count commits: {stderr.strip() or 'no diagnostics'}")

        raw = result.stdout.strip()
        try:
            return int(raw)
        except ValueError as exc:
            raise GitError(f"failed to parse commit count '{raw}'") from exc

    def changed_files(self) -> ChangeCounts:
        # Leading spaces in the status codes are significant; do not strip.
        return classify_status(self._output("status", "--porcelain"))

    def has_changes(self) -> bool:
        return bool(self._output("status", "--porcelain").strip())

    def recent_commits(self, limit: int) -> list[CommitInfo]:
        if limit <= 0:
            return []
        output = self._output("log", "--oneline", "-n", str(limit))
        commits: list[CommitInfo] = []
        for line in output.strip().splitlines():
            if not line:
                continue
            sha, _, message = line.partition(" ")
            commits.append(CommitInfo(hash=sha, message=message))
        return commits

    def reset_hard(self, ref: str = "HEAD") -> None:
        self._output("reset", "--hard", ref)

    def clean(self) -> None:
        """Remove untracked files and directories; ignored files are kept."""

        self._output("clean", "-fd")

    @log_action("git-push")
    def push(self, branch: str, remote: str = "origin") -> None:
        result = self._run("push", remote, branch)
        if result.returncode != 0:
            output = "\n".join(
                part.strip() for part in (result.stdout, result.stderr) if part and part.strip()
            )
            raise GitError(f"git push failed (exit {result.returncode}): {output or 'no diagnostics'}")


__all__ = ["ChangeCounts", "CommitInfo", "GitRepository", "classify_status"]
