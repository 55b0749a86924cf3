"""Domain models shared by the resolver, executor and status reporter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

NO_OUTPUT = "(no output)"
GROUP_MARKER = "@"


class CommandKind(str, Enum):
    GLOBAL = "global"
    BUILTIN = "builtin"
    REPOSITORY = "repository"


class RepositoryState(str, Enum):
    CLEAN = "Clean"
    MODIFIED = "Modified"
    ERROR = "Error"
    WARNING = "Warning"


def strip_group_marker(token: str) -> str:
    """Remove exactly one leading marker: ``@@name`` becomes ``@name``."""
    if token.startswith(GROUP_MARKER):
        return token[len(GROUP_MARKER) :]
    return token


@dataclass(frozen=True)
class RepositoryRef:
    name: str
    path: Path

    def is_valid_directory(self) -> bool:
        return self.path.is_dir()


@dataclass(frozen=True)
class Group:
    name: str
    repository_names: tuple[str, ...] = ()

    def __contains__(self, repository_name: object) -> bool:
        return repository_name in self.repository_names

    def __len__(self) -> int:
        return len(self.repository_names)


@dataclass(frozen=True)
class Command:
    verb: str
    args: tuple[str, ...] = ()
    kind: CommandKind = CommandKind.REPOSITORY

    @property
    def text(self) -> str:
        # Repository commands carry their verb in args; built-ins only carry operands.
        if self.kind == CommandKind.REPOSITORY:
            return " ".join(self.args)
        return " ".join((self.verb, *self.args))


@dataclass(frozen=True)
class ExecutionResult:
    repository: str
    command: str
    succeeded: bool
    output: str = NO_OUTPUT
    error_detail: str | None = None
    duration: float = 0.0
    exit_code: int = -1


@dataclass
class Summary:
    target_group: str = ""
    command_text: str = ""
    total_repositories: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    results: list[ExecutionResult] = field(default_factory=list)
    execution_time: float = 0.0
    finalized: bool = False

    def add_result(self, result: ExecutionResult) -> None:
        if self.finalized:
            raise RuntimeError("Cannot add results to a finalized summary.")
        self.results.append(result)
        self.total_repositories += 1
        if result.succeeded:
            self.successful_executions += 1
        else:
            self.failed_executions += 1

    def finalize(self, execution_time: float) -> None:
        self.execution_time = execution_time
        self.finalized = True

    @property
    def has_failures(self) -> bool:
        return self.failed_executions > 0

    @property
    def success_rate(self) -> float:
        if self.total_repositories == 0:
            return 0.0
        return self.successful_executions / self.total_repositories * 100

    def failed_results(self) -> list[ExecutionResult]:
        return [result for result in self.sorted_results() if not result.succeeded]

    def sorted_results(self) -> list[ExecutionResult]:
        return sorted(self.results, key=lambda item: item.repository)


@dataclass(frozen=True)
class RepositoryStatus:
    repository: str
    path: str = ""
    created: int = 0
    modified: int = 0
    deleted: int = 0
    state: RepositoryState = RepositoryState.CLEAN
    branch: str = ""
    error_detail: str | None = None

    @property
    def has_changes(self) -> bool:
        return self.created > 0 or self.modified > 0 or self.deleted > 0


@dataclass
class StatusReport:
    statuses: list[RepositoryStatus] = field(default_factory=list)
    group_filter: tuple[str, ...] = ()
    summary: Summary = field(default_factory=Summary)

    def _count(self, state: RepositoryState) -> int:
        return sum(1 for item in self.statuses if item.state == state)

    @property
    def total(self) -> int:
        return len(self.statuses)

    @property
    def clean(self) -> int:
        return self._count(RepositoryState.CLEAN)

    @property
    def modified(self) -> int:
        return self._count(RepositoryState.MODIFIED)

    @property
    def errors(self) -> int:
        return self._count(RepositoryState.ERROR)

    @property
    def warnings(self) -> int:
        return self._count(RepositoryState.WARNING)
