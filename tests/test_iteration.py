import json
from pathlib import Path

import pytest

from conftest import commit_file
from gumloop.adapters import AssistantMessage, PassthroughAdapter, ToolUse
from gumloop.agents.registry import AgentProfile, Dialect, PromptStyle
from gumloop.controls.interrupt import InterruptMonitor
from gumloop.errors import (
    AgentLaunchError,
    CommitCountAnomaly,
    OutputReadError,
    VerificationError,
)
from gumloop.runner import iteration
from gumloop.runner.iteration import AgentSupervisor
from gumloop.runner.loop import LoopController, LoopSettings
from gumloop.runner.metrics import ExitReason
from gumloop.vcs.git import GitRepository


def _script_agent(tmp_path: Path, body: str, **profile_kwargs) -> AgentProfile:
    script = tmp_path / "agent.sh"
    script.write_text("set -e\n" + body, encoding="utf-8")
    return AgentProfile(
        id="fake",
        name="Fake Agent",
        command=f"sh {script}",
        check_command="sh",
        **profile_kwargs,
    )


def _supervisor(profile, repo, events, **kwargs):
    return AgentSupervisor(
        profile,
        repository=GitRepository(repo),
        cwd=repo,
        on_event=events.append,
        **kwargs,
    )


@pytest.fixture
def seeded_repo(git_repo):
    for index in range(3):
        commit_file(git_repo, f"seed{index}.txt", str(index), f"seed {index}")
    return git_repo


def test_agent_commit_is_counted(seeded_repo, tmp_path):
    profile = _script_agent(
        tmp_path,
        'echo "working on: $1"\n'
        'echo done > result.txt\n'
        "git add result.txt\n"
        'git commit -q -m "agent work"\n',
    )
    events = []

    result = _supervisor(profile, seeded_repo, events).run("write result")

    assert result.ok
    assert result.returncode == 0
    assert result.commits_made == 1
    assert GitRepository(seeded_repo).count_commits() == 4
    assert (result.modified, result.staged, result.untracked) == (0, 0, 0)
    assert events == [AssistantMessage(text="working on: write result")]
    assert result.duration > 0


def test_changes_without_commit_are_reported(seeded_repo, tmp_path):
    profile = _script_agent(
        tmp_path,
        "echo changed > seed0.txt\n"
        "echo new > fresh.txt\n"
        "echo staged > seed1.txt\n"
        "git add seed1.txt\n",
    )

    result = _supervisor(profile, seeded_repo, []).run("edit")

    assert result.commits_made == 0
    assert (result.modified, result.staged, result.untracked) == (1, 1, 1)


def test_pipe_style_sends_prompt_on_stdin(seeded_repo, tmp_path):
    profile = _script_agent(
        tmp_path,
        "cat > received.txt\n",
        prompt_style=PromptStyle.PIPE,
    )

    result = _supervisor(profile, seeded_repo, []).run("prompt over stdin")

    assert result.ok
    assert (seeded_repo / "received.txt").read_text(encoding="utf-8") == "prompt over stdin"
    assert result.untracked == 1


def test_argument_style_agent_gets_empty_stdin(seeded_repo, tmp_path):
    profile = _script_agent(tmp_path, 'cat > received.txt\necho "$1"\n')
    events = []

    result = _supervisor(profile, seeded_repo, events).run("as argument")

    assert result.ok
    assert (seeded_repo / "received.txt").read_text(encoding="utf-8") == ""
    assert events == [AssistantMessage(text="as argument")]


def test_nonzero_exit_is_not_an_error(seeded_repo, tmp_path):
    profile = _script_agent(tmp_path, "echo partial >&2\nexit 3\n")
    events = []

    result = _supervisor(profile, seeded_repo, events).run("fail")

    assert result.returncode == 3
    assert result.error is None
    assert events == [AssistantMessage(text="partial")]


def test_structured_output_goes_through_dialect_adapter(seeded_repo, tmp_path):
    lines = [
        json.dumps({"type": "tool_use", "name": "Edit"}),
        json.dumps({"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}}),
        json.dumps({"type": "result", "result": "hi"}),
    ]
    body = "".join(f"echo '{line}'\n" for line in lines)
    profile = _script_agent(tmp_path, body, dialect=Dialect.STREAM_JSON)
    events = []

    _supervisor(profile, seeded_repo, events).run("go")

    assert events == [ToolUse(name="Edit"), AssistantMessage(text="hi")]


def test_verification_failure_keeps_counts(seeded_repo, tmp_path):
    profile = _script_agent(
        tmp_path,
        "echo x > x.txt\ngit add x.txt\ngit commit -q -m x\necho y > y.txt\n",
    )

    result = _supervisor(profile, seeded_repo, [], verify="exit 5").run("go")

    assert isinstance(result.error, VerificationError)
    assert result.error.returncode == 5
    assert result.commits_made == 1
    assert result.untracked == 1


def test_verification_success_runs_in_repository(seeded_repo, tmp_path):
    profile = _script_agent(tmp_path, "true\n")

    result = _supervisor(profile, seeded_repo, [], verify="test -f seed0.txt").run("go")

    assert result.ok


def test_history_rewrite_reports_anomaly(seeded_repo, tmp_path):
    profile = _script_agent(tmp_path, "git reset -q --hard HEAD~2\n")

    result = _supervisor(profile, seeded_repo, []).run("rewind")

    assert isinstance(result.error, CommitCountAnomaly)
    assert (result.error.before, result.error.after) == (3, 1)
    assert result.commits_made == 0


def test_missing_executable_is_a_launch_error(seeded_repo, tmp_path):
    profile = AgentProfile(
        id="ghost",
        name="Ghost",
        command=str(tmp_path / "does-not-exist"),
        check_command="does-not-exist",
    )

    result = _supervisor(profile, seeded_repo, []).run("go")

    assert isinstance(result.error, AgentLaunchError)
    assert result.commits_made == 0


def test_empty_command_is_a_launch_error(seeded_repo):
    profile = AgentProfile(id="blank", name="Blank", command="", check_command="")

    result = _supervisor(profile, seeded_repo, []).run("go")

    assert isinstance(result.error, AgentLaunchError)


class _BrokenStreamAdapter(PassthroughAdapter):
    """Pass the first line through, then fail the way a reset pipe would."""

    def process(self, stream, emit):
        super().process(_fail_after_first_line(stream), emit)


def _fail_after_first_line(stream):
    yield next(iter(stream))
    raise OSError("connection reset")


def test_output_read_failure_is_an_iteration_error(seeded_repo, tmp_path, monkeypatch):
    monkeypatch.setattr(iteration, "adapter_for", lambda dialect: _BrokenStreamAdapter())
    profile = _script_agent(
        tmp_path,
        "echo first\n"
        "echo second\n"
        "echo x > x.txt\n"
        "git add x.txt\n"
        "git commit -q -m x\n",
    )
    events = []

    result = _supervisor(profile, seeded_repo, events).run("go")

    assert isinstance(result.error, OutputReadError)
    assert "connection reset" in str(result.error)
    assert result.commits_made == 0
    assert result.returncode is None
    assert events == [AssistantMessage(text="first")]


def test_loop_keeps_going_after_output_read_failure(seeded_repo, tmp_path, monkeypatch):
    monkeypatch.setattr(iteration, "adapter_for", lambda dialect: _BrokenStreamAdapter())
    profile = _script_agent(tmp_path, "echo first\necho second\necho more >> work.txt\n")
    supervisor = _supervisor(profile, seeded_repo, [])
    controller = LoopController(
        profile,
        LoopSettings(prompt="go", looping=True, max_iterations=2, auto_push=False),
        repository=GitRepository(seeded_repo),
        supervisor=supervisor,
        interrupts=InterruptMonitor(signals=()),
    )

    assert controller.run() is ExitReason.MAX_ITERATIONS_REACHED
    assert controller.metrics.iterations == 2
    assert (seeded_repo / "work.txt").read_text(encoding="utf-8") == "more\nmore\n"
