from dataclasses import dataclass, field

import pytest

from gumloop.agents.registry import CLAUDE
from gumloop.controls.interrupt import InterruptMonitor
from gumloop.errors import GitError, VerificationError
from gumloop.memory import SessionMemory
from gumloop.runner.iteration import IterationResult
from gumloop.runner.loop import LoopController, LoopSettings
from gumloop.runner.metrics import ExitReason
from gumloop.vcs.git import ChangeCounts, CommitInfo


@dataclass
class FakeRepository:
    """Scripted stand-in for :class:`GitRepository`."""

    changes: list = field(default_factory=list)
    push_error: Exception | None = None
    pushed: list = field(default_factory=list)
    branch: str = "main"

    def has_changes(self) -> bool:
        if not self.changes:
            return False
        value = self.changes.pop(0)
        if isinstance(value, Exception):
            raise value
        return value

    def current_branch(self) -> str:
        return self.branch

    def push(self, branch: str, remote: str = "origin") -> None:
        if self.push_error is not None:
            raise self.push_error
        self.pushed.append(branch)

    def recent_commits(self, limit: int) -> list[CommitInfo]:
        return [CommitInfo(hash=f"abc{i}", message=f"change {i}") for i in range(limit)]


class FakeSupervisor:
    def __init__(self, commits, on_run=None):
        self._commits = list(commits)
        self.prompts: list[str] = []
        self._on_run = on_run

    def run(self, prompt: str) -> IterationResult:
        self.prompts.append(prompt)
        if self._on_run is not None:
            self._on_run(len(self.prompts))
        commits = self._commits.pop(0) if self._commits else 0
        return IterationResult(commits_made=commits, changes=ChangeCounts())


def _controller(commits, changes, *, interrupts=None, on_run=None, repository=None, **settings):
    settings.setdefault("prompt", "do the work")
    repo = repository or FakeRepository(changes=list(changes))
    supervisor = FakeSupervisor(commits, on_run=on_run)
    controller = LoopController(
        CLAUDE,
        LoopSettings(**settings),
        repository=repo,
        supervisor=supervisor,
        interrupts=interrupts or InterruptMonitor(signals=()),
    )
    return controller, supervisor, repo


def test_clean_tree_without_commits_is_success():
    controller, supervisor, _ = _controller([0], [False], looping=True)

    assert controller.run() is ExitReason.SUCCESS
    assert controller.metrics.iterations == 1
    assert controller.metrics.exit_reason == "Complete (no changes)"


def test_stuck_after_threshold_iterations():
    controller, supervisor, _ = _controller(
        [0, 0, 0], [True, True, True], looping=True, stuck_threshold=2
    )

    assert controller.run() is ExitReason.STUCK
    assert controller.metrics.iterations == 2
    assert len(supervisor.prompts) == 2


def test_commit_resets_stuck_counter():
    controller, _, repo = _controller(
        [0, 1, 0, 0], [True, True, True, True], looping=True, stuck_threshold=2, auto_push=False
    )

    assert controller.run() is ExitReason.STUCK
    assert controller.metrics.iterations == 4
    assert controller.metrics.commits == 1
    assert repo.pushed == []


def test_single_pass_is_success_even_when_dirty():
    controller, supervisor, _ = _controller([0], [True], looping=False)

    assert controller.run() is ExitReason.SUCCESS
    assert len(supervisor.prompts) == 1
    assert controller.iterations_without_commit == 1


def test_single_pass_is_success_even_at_stuck_threshold():
    controller, _, _ = _controller([0], [True], looping=False, stuck_threshold=1)

    assert controller.run() is ExitReason.SUCCESS
    assert controller.iterations_without_commit == 1


def test_max_iterations_cap():
    controller, supervisor, repo = _controller(
        [1, 1, 1, 1], [True] * 4, looping=True, max_iterations=3
    )

    assert controller.run() is ExitReason.MAX_ITERATIONS_REACHED
    assert len(supervisor.prompts) == 3
    assert controller.metrics.commits == 3
    assert repo.pushed == ["main", "main", "main"]


def test_interrupt_stops_before_next_iteration():
    monitor = InterruptMonitor(signals=())

    def interrupt_after_second(count):
        if count == 2:
            monitor.request()

    controller, supervisor, _ = _controller(
        [1, 1, 1], [True, True, True], looping=True, interrupts=monitor, on_run=interrupt_after_second
    )

    assert controller.run() is ExitReason.INTERRUPTED
    assert len(supervisor.prompts) == 2
    assert controller.metrics.exit_reason == "Interrupted by user"


def test_push_failure_does_not_stop_loop(capsys):
    repo = FakeRepository(changes=[True, False], push_error=GitError("no remote"))
    controller, supervisor, _ = _controller([1, 0], [], looping=True, repository=repo)

    assert controller.run() is ExitReason.SUCCESS
    assert len(supervisor.prompts) == 2
    assert "Continuing without push" in capsys.readouterr().out


def test_status_failure_counts_as_clean():
    controller, _, _ = _controller([0], [GitError("status broke")], looping=True)

    assert controller.run() is ExitReason.SUCCESS


def test_iteration_error_does_not_stop_loop():
    class ErroringSupervisor:
        def __init__(self):
            self.calls = 0

        def run(self, prompt):
            self.calls += 1
            return IterationResult(commits_made=1, error=VerificationError("make test", 2))

    supervisor = ErroringSupervisor()
    controller = LoopController(
        CLAUDE,
        LoopSettings(prompt="p", looping=True, max_iterations=2, auto_push=False),
        repository=FakeRepository(changes=[True, True]),
        supervisor=supervisor,
        interrupts=InterruptMonitor(signals=()),
    )

    assert controller.run() is ExitReason.MAX_ITERATIONS_REACHED
    assert supervisor.calls == 2


def test_memory_is_recorded_and_saved(tmp_path):
    memory_path = tmp_path / "memory.yaml"
    memory = SessionMemory.start(branch="main", agent="Claude Code")
    supervisor = FakeSupervisor([2, 0])
    controller = LoopController(
        CLAUDE,
        LoopSettings(prompt="p", looping=True, auto_push=False),
        repository=FakeRepository(changes=[True, False]),
        supervisor=supervisor,
        interrupts=InterruptMonitor(signals=()),
        memory=memory,
        memory_path=memory_path,
    )

    assert controller.run() is ExitReason.SUCCESS

    saved = SessionMemory.load(memory_path)
    assert saved is not None
    assert saved.iterations == 2
    assert saved.commits == 2
    assert [c.hash for c in saved.commit_log] == ["abc0", "abc1"]
    assert saved.exit_reason == "Complete (no changes)"


@pytest.mark.parametrize("looping", [True, False])
def test_metrics_track_iterations(looping):
    controller, _, _ = _controller([0], [False], looping=looping)

    controller.run()

    assert controller.metrics.iterations == 1
    assert controller.metrics.duration >= 0
