"""Turn raw `gf` arguments into a command and its target groups."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Sequence
from dataclasses import dataclass

from gitfleet.catalog import RepositoryCatalog
from gitfleet.errors import (
    GroupNotFoundError,
    InvalidCommandError,
    InvalidGroupNameError,
    NoCommandSpecifiedError,
)
from gitfleet.models import GROUP_MARKER, Command, CommandKind, strip_group_marker

logger = py_logging.getLogger(__name__)

# alias -> (canonical verb, kind)
GLOBAL_COMMANDS: dict[str, tuple[str, CommandKind]] = {
    "help": ("help", CommandKind.GLOBAL),
    "-h": ("help", CommandKind.GLOBAL),
    "--help": ("help", CommandKind.GLOBAL),
    "version": ("version", CommandKind.GLOBAL),
    "-v": ("version", CommandKind.GLOBAL),
    "--version": ("version", CommandKind.GLOBAL),
    "status": ("status", CommandKind.BUILTIN),
    "ls": ("status", CommandKind.BUILTIN),
    "-s": ("status", CommandKind.BUILTIN),
    "--status": ("status", CommandKind.BUILTIN),
    "config": ("config", CommandKind.BUILTIN),
    "-c": ("config", CommandKind.BUILTIN),
    "--config": ("config", CommandKind.BUILTIN),
    "add": ("add", CommandKind.BUILTIN),
    "remove": ("remove", CommandKind.BUILTIN),
    "rm": ("remove", CommandKind.BUILTIN),
    "goto": ("goto", CommandKind.BUILTIN),
}

GROUP_COMMANDS: dict[str, str] = {
    "status": "status",
    "ls": "status",
}

CONFIG_SUBCOMMANDS: dict[str, str] = {
    "validate": "validate",
    "init": "init",
    "create": "init",
    "discover": "discover",
}

CATALOG_TARGETS: dict[str, str] = {
    "repository": "repository",
    "repo": "repository",
    "group": "group",
}

KNOWN_COMMAND_NAMES = frozenset(GLOBAL_COMMANDS) | frozenset(GROUP_COMMANDS)


@dataclass(frozen=True)
class Resolution:
    command: Command | None = None
    groups: tuple[str, ...] = ()

    @property
    def show_help(self) -> bool:
        return self.command is None


SHOW_HELP = Resolution()


def _group_name(token: str) -> str:
    name = strip_group_marker(token)
    if not name:
        raise InvalidGroupNameError(token)
    return name


def _append_unique(groups: list[str], name: str) -> None:
    if name not in groups:
        groups.append(name)


def _resolve_global(args: Sequence[str]) -> Resolution:
    verb, kind = GLOBAL_COMMANDS[args[0]]
    operands = tuple(args[1:])

    if verb == "status":
        groups: list[str] = []
        for token in operands:
            _append_unique(groups, _group_name(token))
        return Resolution(command=Command(verb=verb, kind=kind), groups=tuple(groups))

    if verb == "config" and operands:
        subcommand = CONFIG_SUBCOMMANDS.get(operands[0])
        if subcommand is None:
            raise InvalidCommandError(
                f"Unknown config subcommand: {operands[0]}",
                hint="Config subcommands are 'validate', 'init' and 'discover'.",
            )
        operands = (subcommand, *operands[1:])

    if verb in ("add", "remove"):
        if not operands:
            raise InvalidCommandError(
                f"'{args[0]}' requires a target",
                hint=f"Use 'gf {args[0]} repository ...' or 'gf {args[0]} group ...'.",
            )
        target = CATALOG_TARGETS.get(operands[0])
        if target is None:
            raise InvalidCommandError(
                f"Unknown {verb} target: {operands[0]}",
                hint="Targets are 'repository' (or 'repo') and 'group'.",
            )
        operands = (target, *operands[1:])

    return Resolution(command=Command(verb=verb, args=operands, kind=kind))


def _scan_groups(args: Sequence[str]) -> tuple[list[str], list[str]]:
    groups: list[str] = []
    current: list[str] = []
    previous: list[str] = []

    for index, token in enumerate(args):
        if token.startswith(GROUP_MARKER):
            if current:
                previous = current
                current = []
            _append_unique(groups, _group_name(token))
        elif index == 0 and not token.startswith("-") and token not in KNOWN_COMMAND_NAMES:
            if not token:
                raise InvalidGroupNameError(token)
            groups.append(token)
        else:
            current.append(token)

    return groups, current or previous


def resolve_arguments(
    args: Sequence[str],
    catalog: RepositoryCatalog | None = None,
) -> Resolution:
    """Resolve arguments (program name excluded) into a command and groups.

    Global commands short-circuit group parsing. Otherwise ``@name`` tokens
    and a single leading legacy group name select the targets; the last
    block of non-group tokens is the command. When a catalog is given,
    every group must exist in it.
    """
    tokens = list(args)
    if not tokens:
        return SHOW_HELP

    if tokens[0] in GLOBAL_COMMANDS:
        resolution = _resolve_global(tokens)
    else:
        groups, block = _scan_groups(tokens)
        if not groups:
            if len(tokens) < 2:
                return SHOW_HELP
            raise InvalidCommandError(
                "No groups specified",
                hint="Usage: gf @group <command...>",
            )
        if not block:
            raise NoCommandSpecifiedError(tuple(groups))

        if len(block) == 1 and block[0] in GROUP_COMMANDS:
            command = Command(verb=GROUP_COMMANDS[block[0]], kind=CommandKind.BUILTIN)
        else:
            command = Command(verb=block[0], args=tuple(block), kind=CommandKind.REPOSITORY)
        resolution = Resolution(command=command, groups=tuple(groups))

    if catalog is not None:
        for group_name in resolution.groups:
            if not catalog.has_group(group_name):
                raise GroupNotFoundError(group_name)

    logger.debug(
        "Resolved arguments verb=%s kind=%s groups=%s",
        resolution.command.verb if resolution.command else None,
        resolution.command.kind.value if resolution.command else None,
        list(resolution.groups),
    )
    return resolution
