"""Decide how a command is launched: argv exec or the user's shell."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum

DEFAULT_SHELL = "/bin/sh"

SHELL_METACHARACTERS: tuple[str, ...] = ("&&", "||", "|", ";", ">", "<", "$", "`", '"', "'")

GIT_SUBCOMMANDS = frozenset(
    {
        "add",
        "branch",
        "checkout",
        "cherry-pick",
        "commit",
        "diff",
        "fetch",
        "log",
        "merge",
        "pull",
        "push",
        "rebase",
        "remote",
        "reset",
        "restore",
        "stash",
        "status",
        "switch",
        "tag",
    }
)


class InvocationStrategy(str, Enum):
    SHELL = "shell"
    DIRECT = "direct"


@dataclass(frozen=True)
class Invocation:
    strategy: InvocationStrategy
    argv: tuple[str, ...]


def select_strategy(args: Sequence[str]) -> InvocationStrategy:
    joined = " ".join(args)
    if any(marker in joined for marker in SHELL_METACHARACTERS):
        return InvocationStrategy.SHELL
    if len(args) == 1 and " " in args[0]:
        return InvocationStrategy.SHELL
    return InvocationStrategy.DIRECT


def resolve_shell(env: Mapping[str, str] | None = None, *, override: str = "") -> str:
    if override.strip():
        return override.strip()
    source = os.environ if env is None else env
    return source.get("SHELL", "").strip() or DEFAULT_SHELL


def _with_git_prefix(args: Sequence[str]) -> list[str]:
    if args and args[0] in GIT_SUBCOMMANDS:
        return ["git", *args]
    return list(args)


def build_invocation(
    args: Sequence[str],
    *,
    env: Mapping[str, str] | None = None,
    shell: str = "",
) -> Invocation:
    """Build the argv for ``args``; bare git subcommands get a ``git`` prefix."""
    if not args:
        raise ValueError("Cannot build an invocation for an empty command.")

    strategy = select_strategy(args)
    if strategy == InvocationStrategy.DIRECT:
        return Invocation(strategy=strategy, argv=tuple(_with_git_prefix(args)))

    text = " ".join(args).strip()
    first_word, _, rest = text.partition(" ")
    if first_word in GIT_SUBCOMMANDS:
        text = f"git {first_word} {rest}".rstrip()
    return Invocation(strategy=strategy, argv=(resolve_shell(env, override=shell), "-c", text))
