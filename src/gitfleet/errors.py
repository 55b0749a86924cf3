"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    EXECUTION_FAILED = 1
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    GROUP_NOT_FOUND = 5
    REPOSITORY_NOT_FOUND = 6
    VALIDATION_ERROR = 7


@dataclass
class GitFleetError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class GroupNotFoundError(GitFleetError):
    def __init__(self, group_name: str) -> None:
        super().__init__(
            f"Group '{group_name}' not found",
            code=ExitCode.GROUP_NOT_FOUND,
            hint="Run 'gf config' to list the configured groups.",
        )
        self.group_name = group_name


class RepositoryNotFoundError(GitFleetError):
    def __init__(self, repository_name: str) -> None:
        super().__init__(
            f"Repository '{repository_name}' not found",
            code=ExitCode.REPOSITORY_NOT_FOUND,
            hint="Run 'gf config' to list the configured repositories.",
        )
        self.repository_name = repository_name


class InvalidGroupNameError(GitFleetError):
    def __init__(self, token: str) -> None:
        super().__init__(
            f"Invalid group reference: '{token}'",
            code=ExitCode.INVALID_ARGS,
            hint="Group references look like @name.",
        )
        self.token = token


class NoCommandSpecifiedError(GitFleetError):
    def __init__(self, groups: tuple[str, ...] = ()) -> None:
        super().__init__(
            "No command specified",
            code=ExitCode.INVALID_ARGS,
            hint="Usage: gf [@group ...] <command...>",
        )
        self.groups = groups


class InvalidCommandError(GitFleetError):
    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.INVALID_ARGS, hint=hint or "Run 'gf help' for usage.")


class ConfigError(GitFleetError):
    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.CONFIG_ERROR, hint=hint)


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
