"""Terminal output for agent events, iterations and run summaries."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

import typer

from gumloop.adapters.events import AgentError, AssistantMessage, Event, ToolUse
from gumloop.runner.metrics import ExitReason, format_duration

if TYPE_CHECKING:  # pragma: no cover
    from gumloop.memory import SessionMemory
    from gumloop.runner.iteration import IterationResult
    from gumloop.runner.metrics import Metrics

_RULE = "─" * 38
_DOUBLE_RULE = "═" * 38

_EXIT_ICONS = {
    ExitReason.SUCCESS: "✅",
    ExitReason.GENERAL_ERROR: "❌",
    ExitReason.SAFETY_REFUSAL: "🛑",
    ExitReason.MAX_ITERATIONS_REACHED: "⏱️",
    ExitReason.STUCK: "⚠️",
    ExitReason.INTERRUPTED: "⏸️",
}

_EXIT_COLOURS = {
    ExitReason.SUCCESS: typer.colors.GREEN,
    ExitReason.GENERAL_ERROR: typer.colors.RED,
    ExitReason.SAFETY_REFUSAL: typer.colors.RED,
    ExitReason.MAX_ITERATIONS_REACHED: typer.colors.YELLOW,
    ExitReason.STUCK: typer.colors.YELLOW,
}


def render_event(event: Event) -> None:
    if isinstance(event, ToolUse):
        typer.echo(f"🔧 {event.name}")
    elif isinstance(event, AssistantMessage):
        if event.text:
            typer.echo(event.text)
    elif isinstance(event, AgentError):
        typer.secho(f"⚠️  {event.message}", fg=typer.colors.YELLOW)


def notice(message: str) -> None:
    typer.secho(f"⚠️  {message}", fg=typer.colors.YELLOW)


def info(message: str) -> None:
    typer.echo(message)


def render_iteration_header(
    number: int, max_iterations: int, agent_name: str, now: Optional[datetime] = None
) -> None:
    stamp = (now or datetime.now()).strftime("%H:%M:%S")
    title = f"ITERATION {number} of {max_iterations}" if max_iterations > 0 else f"ITERATION {number}"
    typer.echo("")
    typer.echo(_DOUBLE_RULE)
    typer.secho(f"  🚂 {title}", bold=True)
    typer.echo(f"  {stamp} | {agent_name}")
    typer.echo(_DOUBLE_RULE)
    typer.echo("")


def render_iteration_summary(result: "IterationResult") -> None:
    typer.echo("")
    typer.echo(_RULE)
    typer.echo(f"  Iteration complete ({format_duration(result.duration)})")
    if result.commits_made > 0:
        typer.echo(f"  ✅ Commits: {result.commits_made}")
    else:
        typer.echo("  ℹ️  No commits made")
    if result.changes.any:
        typer.echo(
            f"  📝 Changes: {result.modified} modified, {result.staged} staged, "
            f"{result.untracked} new"
        )
    if result.error is not None:
        typer.secho(f"  ⚠️  {result.error}", fg=typer.colors.YELLOW)
    typer.echo(_RULE)


def render_verification_start(command: str) -> None:
    typer.echo("")
    typer.echo(f"🧪 Running verification: {command}")


def render_verification_result(passed: bool) -> None:
    if passed:
        typer.secho("✅ Verification passed", fg=typer.colors.GREEN)
    else:
        typer.secho("⚠️  Verification failed", fg=typer.colors.YELLOW)


def format_run_summary(agent_name: str, metrics: "Metrics", reason: ExitReason) -> str:
    """Return the plain-text summary printed when a run ends."""

    rows = [
        ("Agent:", agent_name),
        ("Iterations:", str(metrics.iterations)),
        ("Commits:", str(metrics.commits)),
        ("Duration:", format_duration(metrics.duration)),
    ]
    exit_text = metrics.exit_reason or reason.description
    lines = [_RULE, "  RUN COMPLETE", _RULE]
    lines.extend(f"  {label:<12} {value}" for label, value in rows)
    lines.append(_RULE)
    lines.append(f"  Exit: {_EXIT_ICONS.get(reason, '❓')} {exit_text}")
    lines.append(_RULE)
    return "\n".join(lines)


def render_run_summary(agent_name: str, metrics: "Metrics", reason: ExitReason) -> None:
    typer.echo("")
    typer.secho(format_run_summary(agent_name, metrics, reason), fg=_EXIT_COLOURS.get(reason))


def format_memory(session: "SessionMemory") -> str:
    """Return the plain-text view printed by ``gumloop memory show``."""

    started = session.started.strftime("%Y-%m-%d %H:%M:%S %Z") if session.started else "unknown"
    lines = [
        "Session Memory",
        "",
        f"  Started:    {started}",
        f"  Branch:     {session.branch}",
        f"  Agent:      {session.agent}",
        f"  Iterations: {session.iterations}",
        f"  Commits:    {session.commits}",
    ]
    if session.exit_reason:
        lines.append(f"  Exit:       {session.exit_reason}")
    if session.commit_log:
        lines.extend(["", "Commits:"])
        lines.extend(f"  {c.hash}  {c.message}" for c in session.commit_log)
    if session.remaining:
        lines.extend(["", "Remaining:", f"  {session.remaining}"])
    return "\n".join(lines)


__all__ = [
    "format_memory",
    "format_run_summary",
    "info",
    "notice",
    "render_event",
    "render_iteration_header",
    "render_iteration_summary",
    "render_run_summary",
    "render_verification_result",
    "render_verification_start",
]
