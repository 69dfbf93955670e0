"""Translate an agent profile and a task into an argument vector."""

from __future__ import annotations

from gumloop.agents.registry import AgentProfile, PromptStyle


def build_command(
    profile: AgentProfile, prompt: str, model: str = "", autonomous: bool = False
) -> list[str]:
    """Return the argv used to launch ``profile`` for ``prompt``.

    Pipe-style agents receive the prompt on stdin, so it is left out of the
    returned list. An empty result means the profile has no command; callers
    must reject it before spawning.
    """

    args = list(profile.command_tokens)
    if not args:
        return []
    args.extend(profile.autonomous_flags if autonomous else profile.interactive_flags)

    if model and profile.model_flag:
        args.extend([profile.model_flag, model])

    style = profile.prompt_style
    if style is PromptStyle.POSITIONAL_MODEL:
        if model:
            args.append(model)
        args.append(prompt)
    elif style in (PromptStyle.ARGUMENT, PromptStyle.STREAM):
        args.append(prompt)

    return args


__all__ = ["build_command"]
