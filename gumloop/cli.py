"""Typer CLI wiring for gumloop."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from gumloop import __version__
from gumloop.agents.registry import AgentProfile, AgentRegistry, create_registry
from gumloop.config import Config, load_config, resolve_prompt
from gumloop.controls.interrupt import InterruptMonitor
from gumloop.errors import ConfigError, GitError, SafetyError
from gumloop.logging import configure_logging, get_logger, log_exceptions
from gumloop.memory import DEFAULT_FILE_NAME, SessionMemory
from gumloop.runner.loop import LoopController, LoopSettings
from gumloop.runner.metrics import ExitReason
from gumloop.ui import console
from gumloop.vcs.git import GitRepository
from gumloop.vcs.safety import is_dangerous_path, is_home_subdirectory

logger = get_logger(__name__)

app = typer.Typer(help="Run AI coding agents in a loop until the work is done")
memory_app = typer.Typer(help="Inspect or clear session memory")

app.add_typer(memory_app, name="memory")


def _version_callback(value: bool) -> None:
    """Print the gumloop package version when requested."""

    if value:
        typer.echo(f"gumloop {__version__}")
        raise typer.Exit()


@app.callback()
def _main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the gumloop version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str = typer.Option(
        "",
        "--log-level",
        help="Set gumloop log level (e.g. info, warning, debug). Overrides GUMLOOP_LOG_LEVEL.",
    ),
) -> None:
    """Global callback wiring logging and the agent registry."""

    configure_logging(log_level or None)
    ctx.ensure_object(dict)
    ctx.obj.setdefault("registry", create_registry())


def _registry(ctx: typer.Context) -> AgentRegistry:
    obj = ctx.ensure_object(dict)
    registry = obj.get("registry")
    if registry is None:
        registry = obj["registry"] = create_registry()
    return registry


def _build_overrides(
    *,
    cli: Optional[str],
    model: Optional[str],
    prompt_file: Optional[Path],
    no_push: bool,
    stuck_threshold: Optional[int],
    verify: Optional[str],
    memory: bool,
) -> dict:
    overrides: dict = {}
    if cli:
        overrides["cli"] = cli
    if model:
        overrides["model"] = model
    if prompt_file is not None:
        overrides["prompt_file"] = str(prompt_file)
    if no_push:
        overrides["auto_push"] = False
    if stuck_threshold is not None:
        overrides["stuck_threshold"] = stuck_threshold
    if verify:
        overrides["verify"] = verify
    if memory:
        overrides["memory"] = True
    return overrides


def _check_safety(repository: GitRepository, cwd: Path, *, looping: bool, assume_yes: bool) -> None:
    if not repository.is_inside_work_tree():
        raise SafetyError("not in a git repository. Initialize with: git init")

    if is_dangerous_path(cwd):
        raise SafetyError(
            f"refusing to run in dangerous path: {cwd}\n\n"
            "For safety, gumloop refuses to run in system directories.\n"
            "Please run from a project directory."
        )

    if looping and not assume_yes and is_home_subdirectory(cwd):
        typer.echo("")
        typer.secho(
            "⚠️  WARNING: You are running in choo-choo mode under your home directory.",
            fg=typer.colors.YELLOW,
        )
        typer.echo("   Autonomous agents will make changes without asking for permission.")
        typer.echo("   Git is your safety net, but use caution.")
        if not typer.confirm("Continue?", default=False):
            raise SafetyError("cancelled by user", exit_code=int(ExitReason.INTERRUPTED))


def _start_memory(
    config: Config, profile: AgentProfile, repository: GitRepository, prompt: str, memory_path: Path
) -> tuple[Optional[SessionMemory], str]:
    if not config.memory:
        return None, prompt

    previous = SessionMemory.load(memory_path)
    if previous is not None:
        context = previous.to_prompt_context()
        if context:
            prompt = f"{context}\n{prompt}"

    try:
        branch = repository.current_branch()
    except GitError as exc:
        logger.warning("unable to determine branch for session memory: %s", exc)
        branch = ""
    return SessionMemory.start(branch=branch, agent=profile.name), prompt


def _fail(message: str, code: int) -> typer.Exit:
    typer.secho(f"Error: {message}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=code)


@app.command()
def run(
    ctx: typer.Context,
    prompt: Optional[str] = typer.Option(
        None, "--prompt", "-p", help="Inline prompt text (required if no prompt file exists)."
    ),
    prompt_file: Optional[Path] = typer.Option(
        None, "--prompt-file", help="Path to the prompt file (default PROMPT.md)."
    ),
    cli: Optional[str] = typer.Option(
        None, "--cli", help="Agent to use (claude, codex, gemini, opencode, cursor, ollama)."
    ),
    model: Optional[str] = typer.Option(None, "--model", help="Model override for the agent."),
    choo_choo: bool = typer.Option(
        False, "--choo-choo", help="Loop autonomously until the work is complete."
    ),
    max_iterations: int = typer.Option(
        0,
        "--max-iterations",
        "-n",
        min=0,
        help="Stop after N iterations (0 = unlimited). Implies --choo-choo.",
    ),
    no_push: bool = typer.Option(False, "--no-push", help="Don't push commits to the remote."),
    stuck_threshold: Optional[int] = typer.Option(
        None, "--stuck-threshold", help="Exit after N iterations with changes but no commits."
    ),
    verify: Optional[str] = typer.Option(
        None, "--verify", help="Shell command to run after each iteration."
    ),
    memory: bool = typer.Option(
        False, "--memory", help="Persist session memory between runs."
    ),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Skip the confirmation prompt under the home directory."
    ),
) -> None:
    """Execute an AI coding agent with a prompt, once or in a loop."""

    registry = _registry(ctx)
    cwd = Path.cwd()
    repository = GitRepository(cwd)
    looping = choo_choo or max_iterations > 0

    try:
        config = load_config(
            registry=registry,
            overrides=_build_overrides(
                cli=cli,
                model=model,
                prompt_file=prompt_file,
                no_push=no_push,
                stuck_threshold=stuck_threshold,
                verify=verify,
                memory=memory,
            ),
        )
        prompt_text = resolve_prompt(prompt, config.prompt_file)
        profile = registry.resolve(config.cli)
        _check_safety(repository, cwd, looping=looping, assume_yes=yes)
    except SafetyError as exc:
        raise _fail(str(exc), exc.exit_code)
    except ConfigError as exc:
        raise _fail(str(exc), int(ExitReason.GENERAL_ERROR))

    logger.debug(
        "run configuration",
        extra={"metadata": {"cli": config.cli, "looping": looping, "max_iterations": max_iterations}},
    )

    memory_path = cwd / DEFAULT_FILE_NAME
    session, prompt_text = _start_memory(config, profile, repository, prompt_text, memory_path)

    settings = LoopSettings(
        prompt=prompt_text,
        model=config.model,
        verify=config.verify,
        auto_push=config.auto_push,
        stuck_threshold=config.stuck_threshold,
        looping=looping,
        max_iterations=max_iterations,
    )

    reason = ExitReason.GENERAL_ERROR
    with InterruptMonitor(on_interrupt=lambda: console.notice("Interrupted by user")) as interrupts:
        controller = LoopController(
            profile,
            settings,
            repository=repository,
            interrupts=interrupts,
            memory=session,
            memory_path=memory_path,
        )
        try:
            with log_exceptions(logger, message="run loop crashed"):
                reason = controller.run()
        finally:
            console.render_run_summary(profile.name, controller.metrics, reason)

    raise typer.Exit(code=int(reason))


@app.command()
def agents(ctx: typer.Context) -> None:
    """List the supported agents and whether each is installed."""

    registry = _registry(ctx)
    for agent_id in registry.ids():
        profile = registry[agent_id]
        status = "installed" if profile.is_installed() else "not found"
        typer.echo(f"{agent_id:<10} {profile.name:<16} {status}")


def _discard_changes(repository: GitRepository, *, assume_yes: bool) -> None:
    if not repository.has_changes():
        typer.secho("✓ Working tree is already clean", fg=typer.colors.GREEN)
        return

    changes = repository.changed_files()
    typer.secho("⚠️  This will discard all uncommitted changes:", fg=typer.colors.YELLOW)
    typer.echo("")
    for number, label in (
        (changes.modified, "modified"),
        (changes.staged, "staged"),
        (changes.untracked, "untracked"),
    ):
        if number:
            typer.echo(f"  • {number} {label} file(s)")
    typer.echo("")

    if not assume_yes and not typer.confirm("Discard all changes?", default=False):
        typer.echo("Cancelled.")
        return

    repository.reset_hard()
    repository.clean()
    typer.secho("✓ All changes discarded", fg=typer.colors.GREEN)


def _reset_commits(repository: GitRepository, count: int, *, assume_yes: bool) -> None:
    total = repository.count_commits()
    if total == 0:
        raise _fail("no commits to reset", int(ExitReason.GENERAL_ERROR))
    if count > total:
        raise _fail(
            f"cannot reset {count} commits, only {total} commit(s) exist",
            int(ExitReason.GENERAL_ERROR),
        )

    branch = repository.current_branch()
    typer.secho(
        f"⚠️  This will reset the last {count} commit(s) on branch '{branch}'",
        fg=typer.colors.YELLOW,
    )
    typer.echo("")
    typer.echo("Commits to be reset:")
    typer.echo("")
    for commit in repository.recent_commits(count):
        typer.echo(f"  {commit.hash} {commit.message}")
    typer.echo("")

    if not assume_yes and not typer.confirm(f"Reset last {count} commit(s)?", default=False):
        typer.echo("Cancelled.")
        return

    repository.reset_hard(f"HEAD~{count}")
    typer.secho(f"✓ Reset {count} commit(s)", fg=typer.colors.GREEN)


@app.command()
def recover(
    count: Optional[int] = typer.Argument(
        None, help="Reset the last N commits instead of discarding uncommitted changes."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Discard uncommitted changes, or reset the last N commits."""

    repository = GitRepository(Path.cwd())
    if not repository.is_inside_work_tree():
        raise _fail("not in a git repository", int(ExitReason.GENERAL_ERROR))
    if count is not None and count <= 0:
        raise _fail(
            f"number of commits must be positive, got {count}", int(ExitReason.GENERAL_ERROR)
        )

    try:
        if count is None:
            _discard_changes(repository, assume_yes=yes)
        else:
            _reset_commits(repository, count, assume_yes=yes)
    except GitError as exc:
        raise _fail(str(exc), int(ExitReason.GENERAL_ERROR))


@memory_app.command("show")
def memory_show() -> None:
    """Show the session memory left by the last ``--memory`` run."""

    session = SessionMemory.load(Path.cwd() / DEFAULT_FILE_NAME)
    if session is None:
        typer.echo("No session memory found.")
        return
    typer.echo(console.format_memory(session))


@memory_app.command("clear")
def memory_clear() -> None:
    """Delete the session memory file."""

    path = Path.cwd() / DEFAULT_FILE_NAME
    if not path.exists():
        typer.echo("No session memory to clear.")
        return
    try:
        path.unlink()
    except OSError as exc:
        raise _fail(f"failed to delete session memory: {exc}", int(ExitReason.GENERAL_ERROR))
    typer.echo("Session memory cleared.")


def main() -> None:
    """Entry point used by the console script."""

    app()


if __name__ == "__main__":
    main()
