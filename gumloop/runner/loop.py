"""The iteration loop and its termination rules."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol

from gumloop.agents.registry import AgentProfile
from gumloop.controls.interrupt import InterruptMonitor
from gumloop.errors import GitError
from gumloop.logging import get_logger
from gumloop.memory import DEFAULT_FILE_NAME, CommitRecord, SessionMemory
from gumloop.runner.iteration import AgentSupervisor, IterationResult
from gumloop.runner.metrics import ExitReason, Metrics
from gumloop.ui import console
from gumloop.vcs.git import GitRepository

logger = get_logger(__name__)


class Supervisor(Protocol):
    def run(self, prompt: str) -> IterationResult:
        """Run one agent invocation."""


@dataclass(frozen=True)
class LoopSettings:
    """Per-run knobs for :class:`LoopController`.

    ``looping`` selects autonomous mode; without it exactly one iteration runs.
    ``max_iterations`` of 0 means no cap.
    """

    prompt: str
    model: str = ""
    verify: str = ""
    auto_push: bool = True
    stuck_threshold: int = 3
    looping: bool = False
    max_iterations: int = 0


class LoopController:
    """Invoke the agent repeatedly until a terminal state is reached.

    After each pass the controller decides between carrying on and one of the
    terminal :class:`ExitReason` values. Interrupts are only honoured between
    iterations. A failed pass is logged and the loop keeps going.
    """

    def __init__(
        self,
        profile: AgentProfile,
        settings: LoopSettings,
        *,
        repository: Optional[GitRepository] = None,
        supervisor: Optional[Supervisor] = None,
        interrupts: Optional[InterruptMonitor] = None,
        memory: Optional[SessionMemory] = None,
        memory_path: Path | str = DEFAULT_FILE_NAME,
    ) -> None:
        self.profile = profile
        self.settings = settings
        self.repository = repository or GitRepository()
        self.supervisor: Supervisor = supervisor or AgentSupervisor(
            profile,
            model=settings.model,
            verify=settings.verify,
            autonomous=settings.looping,
            repository=self.repository,
        )
        self.interrupts = interrupts or InterruptMonitor()
        self.memory = memory
        self.memory_path = Path(memory_path)
        self.metrics = Metrics()
        self.iterations_without_commit = 0

    def run(self) -> ExitReason:
        while True:
            reason = self.step()
            if reason is not None:
                return reason

    def step(self) -> Optional[ExitReason]:
        """Run one pass of the state machine; return a terminal reason or ``None``."""

        if self.interrupts.requested:
            return self._finish(ExitReason.INTERRUPTED)

        cap = self.settings.max_iterations
        if cap > 0 and self.metrics.iterations >= cap:
            return self._finish(ExitReason.MAX_ITERATIONS_REACHED)

        self.metrics.iterations += 1
        console.render_iteration_header(self.metrics.iterations, cap, self.profile.name)

        result = self.supervisor.run(self.settings.prompt)
        if result.error is not None:
            logger.warning(
                "iteration %d error: %s",
                self.metrics.iterations,
                result.error,
                extra={"metadata": {"iteration": self.metrics.iterations}},
            )

        commits_made = result.commits_made
        self.metrics.commits += commits_made
        self._record_memory(commits_made)

        if commits_made > 0 and self.settings.auto_push:
            self._push()

        reason = self._evaluate(commits_made, self._has_changes())

        # A single pass always reports success, even when it would count as stuck.
        if not self.settings.looping:
            return self._finish(ExitReason.SUCCESS)

        return self._finish(reason) if reason is not None else None

    def _evaluate(self, commits_made: int, has_changes: bool) -> Optional[ExitReason]:
        if not has_changes and commits_made == 0:
            return ExitReason.SUCCESS

        if has_changes and commits_made == 0:
            self.iterations_without_commit += 1
            if self.iterations_without_commit >= self.settings.stuck_threshold:
                return ExitReason.STUCK
        elif commits_made > 0:
            self.iterations_without_commit = 0

        return None

    def _has_changes(self) -> bool:
        try:
            return self.repository.has_changes()
        except GitError as exc:
            logger.warning("failed to check for changes: %s", exc)
            return False

    def _push(self) -> None:
        try:
            branch = self.repository.current_branch()
        except GitError as exc:
            console.notice(f"Warning: failed to get branch name: {exc}")
            return

        console.info(f"☁️  Pushing to origin/{branch}...")
        try:
            self.repository.push(branch)
        except GitError as exc:
            logger.warning("push failed: %s", exc)
            console.notice(f"Push failed: {exc}. Continuing without push.")
            return
        console.info(f"✅ Pushed to origin/{branch}")

    def _record_memory(self, commits_made: int) -> None:
        if self.memory is None:
            return

        new_commits: list[CommitRecord] = []
        if commits_made > 0:
            try:
                new_commits = [
                    CommitRecord(hash=c.hash, message=c.message)
                    for c in self.repository.recent_commits(commits_made)
                ]
            except GitError as exc:
                logger.warning("unable to read recent commits: %s", exc)

        self.memory.record_iteration(commits_made, new_commits)
        self._save_memory()

    def _save_memory(self) -> None:
        if self.memory is None:
            return
        try:
            self.memory.save(self.memory_path)
        except OSError as exc:
            console.notice(f"Warning: failed to save session memory: {exc}")

    def _finish(self, reason: ExitReason) -> ExitReason:
        self.metrics.finish(reason)
        if self.memory is not None:
            self.memory.set_exit(reason.description)
            self._save_memory()
        return reason


__all__ = ["LoopController", "LoopSettings", "Supervisor"]
