"""Run one agent invocation and measure what it changed."""

from __future__ import annotations

import contextlib
import os
import queue
import subprocess
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from gumloop.adapters import Event, adapter_for
from gumloop.agents.command import build_command
from gumloop.agents.registry import AgentProfile, PromptStyle
from gumloop.errors import (
    AgentLaunchError,
    CommitCountAnomaly,
    GitError,
    GumloopError,
    OutputReadError,
    VerificationError,
)
from gumloop.logging import get_logger
from gumloop.ui import console
from gumloop.vcs.git import ChangeCounts, GitRepository

logger = get_logger(__name__)

EVENT_CHANNEL_CAPACITY = 100
_CHANNEL_CLOSED = object()


@dataclass
class IterationResult:
    """Observable effects of a single agent invocation."""

    duration: float = 0.0
    commits_made: int = 0
    changes: ChangeCounts = field(default_factory=ChangeCounts)
    error: Optional[Exception] = None
    returncode: Optional[int] = None

    @property
    def modified(self) -> int:
        return self.changes.modified

    @property
    def staged(self) -> int:
        return self.changes.staged

    @property
    def untracked(self) -> int:
        return self.changes.untracked

    @property
    def ok(self) -> bool:
        return self.error is None


class AgentSupervisor:
    """Spawn an agent, stream its output through an adapter and count its commits.

    A non-zero agent exit status is logged and otherwise ignored, since agents
    often exit abnormally after doing useful work. Read failures on the output
    stream and verification failures are reported through
    :attr:`IterationResult.error`; the commit and change counts measured before
    a verification failure are still returned.
    """

    def __init__(
        self,
        profile: AgentProfile,
        *,
        model: str = "",
        verify: str = "",
        autonomous: bool = False,
        repository: Optional[GitRepository] = None,
        cwd: Optional[Path | str] = None,
        on_event: Optional[Callable[[Event], None]] = None,
    ) -> None:
        self.profile = profile
        self.model = model
        self.verify = verify
        self.autonomous = autonomous
        self.cwd = Path(cwd) if cwd is not None else Path.cwd()
        self.repository = repository or GitRepository(self.cwd)
        self.on_event = on_event or console.render_event
        self._logger = get_logger(__name__, metadata={"agent": profile.id})

    def run(self, prompt: str) -> IterationResult:
        started = time.monotonic()
        result = IterationResult()
        try:
            self._run(prompt, result)
        except GumloopError as exc:
            self._logger.warning("iteration failed: %s", exc)
            result.error = result.error or exc
        result.duration = time.monotonic() - started
        console.render_iteration_summary(result)
        return result

    def _run(self, prompt: str, result: IterationResult) -> None:
        before = self.repository.count_commits()

        argv = build_command(self.profile, prompt, self.model, self.autonomous)
        if not argv:
            raise AgentLaunchError(f"agent '{self.profile.id}' produced an empty command")

        result.returncode = self._run_agent(argv, prompt)
        if result.returncode != 0:
            self._logger.info(
                "agent exited with status %s; continuing",
                result.returncode,
                extra={"metadata": {"returncode": result.returncode}},
            )
            console.notice(f"Agent exited with code {result.returncode}. Continuing...")

        after = self.repository.count_commits()
        commits = after - before
        if commits < 0:
            anomaly = CommitCountAnomaly(before, after)
            self._logger.warning("%s", anomaly)
            result.error = anomaly
            commits = 0
        result.commits_made = commits
        result.changes = self.repository.changed_files()

        if self.verify:
            try:
                self._run_verification()
            except VerificationError as exc:
                self._logger.warning("%s", exc)
                result.error = result.error or exc

    def _run_agent(self, argv: list[str], prompt: str) -> int:
        piped = self.profile.prompt_style is PromptStyle.PIPE
        self._logger.debug("launching %s", argv, extra={"metadata": {"argv": argv}})
        try:
            process = subprocess.Popen(
                argv,
                cwd=self.cwd,
                env=os.environ.copy(),
                stdin=subprocess.PIPE if piped else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as exc:
            raise AgentLaunchError(f"failed to start agent '{argv[0]}': {exc}") from exc

        channel: queue.Queue[object] = queue.Queue(maxsize=EVENT_CHANNEL_CAPACITY)
        failures: list[Exception] = []
        adapter = adapter_for(self.profile.dialect)

        def feed() -> None:
            try:
                adapter.process(process.stdout, channel.put)
            except OutputReadError as exc:
                failures.append(exc)
            except Exception as exc:  # pragma: no cover - adapter bug
                self._logger.exception("output adapter crashed")
                failures.append(OutputReadError(f"output adapter crashed: {exc}"))
            finally:
                channel.put(_CHANNEL_CLOSED)

        def drain() -> None:
            while True:
                event = channel.get()
                if event is _CHANNEL_CLOSED:
                    return
                try:
                    self.on_event(event)  # type: ignore[arg-type]
                except Exception:  # pragma: no cover - renderer bug
                    self._logger.exception("failed to render agent event")

        feeder = threading.Thread(target=feed, name=f"{self.profile.id}-adapter", daemon=True)
        drainer = threading.Thread(target=drain, name=f"{self.profile.id}-display", daemon=True)
        feeder.start()
        drainer.start()

        if piped and process.stdin is not None:
            try:
                process.stdin.write(prompt.encode("utf-8"))
            except BrokenPipeError:
                self._logger.debug("agent closed stdin before reading the whole prompt")
            finally:
                with contextlib.suppress(BrokenPipeError):
                    process.stdin.close()

        returncode = process.wait()
        feeder.join()
        drainer.join()
        if process.stdout is not None:
            process.stdout.close()

        if failures:
            raise failures[0]
        return returncode

    def _run_verification(self) -> None:
        console.render_verification_start(self.verify)
        try:
            completed = subprocess.run(self.verify, shell=True, cwd=self.cwd, check=False)
        except OSError as exc:
            console.render_verification_result(False)
            raise VerificationError(self.verify, 127) from exc
        if completed.returncode != 0:
            console.render_verification_result(False)
            raise VerificationError(self.verify, completed.returncode)
        console.render_verification_result(True)


__all__ = ["AgentSupervisor", "EVENT_CHANNEL_CAPACITY", "IterationResult"]
