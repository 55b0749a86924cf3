"""Route a resolved command to the component that handles it."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from gitfleet.catalog import RepositoryCatalog
from gitfleet.config import create_default_config, save_config, validate_config
from gitfleet.discovery import discover
from gitfleet.errors import ConfigError, ExitCode, GitFleetError, InvalidCommandError
from gitfleet.executor import ConcurrentExecutor
from gitfleet.models import Command, CommandKind, StatusReport, Summary, strip_group_marker
from gitfleet.presenter import (
    render_config,
    render_discovery,
    render_help,
    render_status,
    render_summary,
    render_validation,
)
from gitfleet.resolver import Resolution
from gitfleet.status import StatusReporter

logger = py_logging.getLogger(__name__)


@dataclass
class DispatchOutcome:
    output: str = ""
    exit_code: ExitCode = ExitCode.SUCCESS
    summary: Summary | None = None
    status_report: StatusReport | None = None


def _summary_exit_code(summary: Summary) -> ExitCode:
    return ExitCode.EXECUTION_FAILED if summary.has_failures else ExitCode.SUCCESS


class Dispatcher:
    def __init__(
        self,
        catalog: RepositoryCatalog,
        *,
        config_path: Path,
        executor: ConcurrentExecutor | None = None,
        status_reporter: StatusReporter | None = None,
        version: str = "dev",
        save: Callable[..., Path] = save_config,
    ) -> None:
        self.catalog = catalog
        self.config_path = config_path
        self.executor = executor or ConcurrentExecutor()
        self.status_reporter = status_reporter or StatusReporter()
        self.version = version
        self._save = save

    def dispatch(
        self,
        resolution: Resolution,
        *,
        cancel_event: threading.Event | None = None,
    ) -> DispatchOutcome:
        command = resolution.command
        if command is None:
            return DispatchOutcome(output=render_help(self.config_path))

        logger.debug("Dispatching verb=%s kind=%s", command.verb, command.kind.value)
        if command.kind == CommandKind.GLOBAL:
            return self._run_global(command)
        if command.kind == CommandKind.BUILTIN:
            return self._run_builtin(command, resolution.groups, cancel_event)
        return self._run_repository_command(command, resolution.groups, cancel_event)

    def _run_global(self, command: Command) -> DispatchOutcome:
        if command.verb == "help":
            return DispatchOutcome(output=render_help(self.config_path))
        if command.verb == "version":
            return DispatchOutcome(output=f"git-fleet {self.version}")
        raise InvalidCommandError(f"Unknown command: {command.verb}")

    def _run_builtin(
        self,
        command: Command,
        groups: tuple[str, ...],
        cancel_event: threading.Event | None,
    ) -> DispatchOutcome:
        if command.verb == "status":
            report = self.status_reporter.report(self.catalog, groups, cancel_event=cancel_event)
            return DispatchOutcome(
                output=render_status(report),
                exit_code=_summary_exit_code(report.summary),
                summary=report.summary,
                status_report=report,
            )
        if command.verb == "config":
            return self._run_config(command.args)
        if command.verb == "add":
            return self._run_add(command.args)
        if command.verb == "remove":
            return self._run_remove(command.args)
        if command.verb == "goto":
            return self._run_goto(command.args)
        raise InvalidCommandError(f"Unknown command: {command.verb}")

    def _run_config(self, args: tuple[str, ...]) -> DispatchOutcome:
        subcommand = args[0] if args else ""
        if not subcommand:
            return DispatchOutcome(output=render_config(self.catalog, self.config_path))
        if subcommand == "validate":
            problems = validate_config(self.catalog.config)
            return DispatchOutcome(
                output=render_validation(problems),
                exit_code=ExitCode.VALIDATION_ERROR if problems else ExitCode.SUCCESS,
            )
        if subcommand == "init":
            if self.config_path.exists():
                raise ConfigError(
                    f"Configuration file already exists: {self.config_path}",
                    hint="Edit it directly or remove it before running 'gf config init'.",
                )
            written = create_default_config(self.config_path)
            return DispatchOutcome(output=f"Created configuration file: {written}")
        if subcommand == "discover":
            return self._run_discover(args[1:])
        raise InvalidCommandError(f"Unknown config subcommand: {subcommand}")

    def _run_discover(self, operands: tuple[str, ...]) -> DispatchOutcome:
        if len(operands) > 1:
            raise InvalidCommandError(
                "'config discover' takes at most one directory",
                hint="Usage: gf config discover [directory]",
            )
        root = Path(operands[0]).expanduser() if operands else Path.cwd()
        if not root.is_dir():
            raise GitFleetError(
                f"Path is not a directory: {root}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Run 'gf config discover' from the directory that holds your checkouts.",
            )
        result = discover(root, existing_names=self.catalog.config.repositories.keys())
        written = self.config_path
        if result.repositories:
            self.catalog.add_discovered(result.repositories, result.groups)
            written = self._persist()
        return DispatchOutcome(output=render_discovery(result, written))

    def _persist(self) -> Path:
        return self._save(self.catalog.config, self.config_path)

    def _run_add(self, args: tuple[str, ...]) -> DispatchOutcome:
        target, operands = args[0], args[1:]
        if target == "repository":
            if len(operands) != 2:
                raise InvalidCommandError(
                    "'add repository' takes a name and a path",
                    hint="Usage: gf add repository <name> <path>",
                )
            repository = self.catalog.add_repository(operands[0], operands[1])
            self._persist()
            return DispatchOutcome(output=f"Added repository '{repository.name}' -> {repository.path}")

        if len(operands) < 2:
            raise InvalidCommandError(
                "'add group' takes a name and at least one repository",
                hint="Usage: gf add group <name> <repository...>",
            )
        group = self.catalog.add_group(operands[0], operands[1:])
        self._persist()
        return DispatchOutcome(output=f"Added group '{group.name}' with {len(group)} repositories")

    def _run_remove(self, args: tuple[str, ...]) -> DispatchOutcome:
        target, operands = args[0], args[1:]
        if len(operands) != 1:
            raise InvalidCommandError(
                f"'remove {target}' takes exactly one name",
                hint=f"Usage: gf remove {target} <name>",
            )
        name = operands[0]
        if target == "repository":
            self.catalog.remove_repository(name)
        else:
            self.catalog.remove_group(strip_group_marker(name))
        self._persist()
        return DispatchOutcome(output=f"Removed {target} '{name}'")

    def _run_goto(self, args: tuple[str, ...]) -> DispatchOutcome:
        if len(args) != 1:
            raise InvalidCommandError(
                "'goto' takes exactly one repository name",
                hint="Usage: cd \"$(gf goto <name>)\"",
            )
        repository = self.catalog.find_closest(args[0])
        return DispatchOutcome(output=str(repository.path))

    def _run_repository_command(
        self,
        command: Command,
        groups: tuple[str, ...],
        cancel_event: threading.Event | None,
    ) -> DispatchOutcome:
        repositories = self.catalog.get_repositories_for_groups(groups)
        target_group = ", ".join(groups)
        if not repositories:
            logger.warning("No repositories found for groups=%s", list(groups))
            return DispatchOutcome(output=f"No repositories found for group(s): {target_group}")

        summary = self.executor.execute(
            repositories,
            command,
            target_group=target_group,
            cancel_event=cancel_event,
        )
        return DispatchOutcome(
            output=render_summary(summary),
            exit_code=_summary_exit_code(summary),
            summary=summary,
        )
