"""Working-tree status classification from `git status --porcelain`."""

from __future__ import annotations

import logging as py_logging
import subprocess
import threading
import time
from collections.abc import Callable, Iterable, Sequence

from gitfleet.catalog import RepositoryCatalog
from gitfleet.executor import ExecutionCancelled, ProcessRunner, run_concurrently, run_process
from gitfleet.models import (
    ExecutionResult,
    RepositoryRef,
    RepositoryState,
    RepositoryStatus,
    StatusReport,
    Summary,
)

logger = py_logging.getLogger(__name__)

STATUS_COMMAND = ("git", "status", "--porcelain")
BRANCH_COMMAND = ("git", "branch", "--show-current")

_CREATED_CODES = frozenset("A?")
_MODIFIED_CODES = frozenset("M")
_DELETED_CODES = frozenset("D")


def classify_porcelain(lines: Iterable[str]) -> tuple[int, int, int]:
    """Count (created, modified, deleted) entries.

    Only the first non-blank character of each line is inspected; renames,
    copies and conflict codes fall into none of the buckets.
    """
    created = modified = deleted = 0
    for raw_line in lines:
        line = raw_line.strip()
        if len(line) < 2:
            continue
        code = line[0]
        if code in _CREATED_CODES:
            created += 1
        elif code in _MODIFIED_CODES:
            modified += 1
        elif code in _DELETED_CODES:
            deleted += 1
    return created, modified, deleted


def classify_state(created: int, modified: int, deleted: int) -> RepositoryState:
    if created or modified or deleted:
        return RepositoryState.MODIFIED
    return RepositoryState.CLEAN


def status_from_output(repository: RepositoryRef, output: str, *, branch: str = "") -> RepositoryStatus:
    created, modified, deleted = classify_porcelain(output.splitlines())
    return RepositoryStatus(
        repository=repository.name,
        path=str(repository.path),
        created=created,
        modified=modified,
        deleted=deleted,
        state=classify_state(created, modified, deleted),
        branch=branch,
    )


def _error_status(repository: RepositoryRef, detail: str) -> RepositoryStatus:
    return RepositoryStatus(
        repository=repository.name,
        path=str(repository.path),
        state=RepositoryState.ERROR,
        error_detail=detail,
    )


def status_to_result(status: RepositoryStatus) -> ExecutionResult:
    if status.state == RepositoryState.ERROR:
        return ExecutionResult(
            repository=status.repository,
            command="status",
            succeeded=False,
            error_detail=status.error_detail or "status query failed",
        )
    if not status.has_changes:
        output = RepositoryState.CLEAN.value
    else:
        output = (
            f"{status.state.value}: created={status.created} "
            f"modified={status.modified} deleted={status.deleted}"
        )
    return ExecutionResult(
        repository=status.repository,
        command="status",
        succeeded=True,
        output=output,
        exit_code=0,
    )


class StatusReporter:
    def __init__(
        self,
        runner: ProcessRunner = run_process,
        *,
        max_workers: int | None = None,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds or None
        self._clock = clock

    def _run(
        self,
        repository: RepositoryRef,
        argv: Sequence[str],
        cancel_event: threading.Event | None,
    ) -> subprocess.CompletedProcess[str]:
        return self.runner(
            list(argv),
            cwd=repository.path,
            timeout=self.timeout_seconds,
            cancel_event=cancel_event,
        )

    def _branch(self, repository: RepositoryRef, cancel_event: threading.Event | None) -> str:
        try:
            completed = self._run(repository, BRANCH_COMMAND, cancel_event)
        except (subprocess.TimeoutExpired, ExecutionCancelled, OSError) as exc:
            logger.debug("Branch lookup failed repository=%s error=%s", repository.name, exc)
            return "unknown"
        if completed.returncode != 0:
            return "unknown"
        return completed.stdout.strip() or "detached"

    def repository_status(
        self,
        repository: RepositoryRef,
        *,
        cancel_event: threading.Event | None = None,
    ) -> RepositoryStatus:
        if not repository.path.is_dir():
            return _error_status(repository, f"invalid directory: {repository.path}")
        if not (repository.path / ".git").exists():
            return _error_status(repository, "not a git repository")

        try:
            completed = self._run(repository, STATUS_COMMAND, cancel_event)
        except subprocess.TimeoutExpired:
            return _error_status(repository, f"status query timed out after {self.timeout_seconds}s")
        except ExecutionCancelled:
            return _error_status(repository, "cancelled")
        except OSError as exc:
            return _error_status(repository, f"failed to run git: {exc}")

        if completed.returncode != 0:
            detail = (completed.stdout or completed.stderr or "").strip()
            logger.warning(
                "git status failed repository=%s returncode=%s",
                repository.name,
                completed.returncode,
            )
            return _error_status(repository, detail or f"git status exited with {completed.returncode}")

        return status_from_output(
            repository,
            completed.stdout,
            branch=self._branch(repository, cancel_event),
        )

    def report(
        self,
        catalog: RepositoryCatalog,
        groups: Sequence[str] = (),
        *,
        cancel_event: threading.Event | None = None,
    ) -> StatusReport:
        """Query every repository of ``groups`` (all repositories when empty).

        Group members missing from the catalog are reported with a warning
        state and are not part of the execution summary.
        """
        started = self._clock()
        warnings: list[RepositoryStatus] = []
        if groups:
            targets: list[RepositoryRef] = []
            seen: set[str] = set()
            for group_name in groups:
                group = catalog.get_group(group_name)
                for repo_name in group.repository_names:
                    if repo_name in seen:
                        continue
                    seen.add(repo_name)
                    if not catalog.has_repository(repo_name):
                        logger.warning("Group '%s' references unknown repository '%s'", group_name, repo_name)
                        warnings.append(
                            RepositoryStatus(
                                repository=repo_name,
                                state=RepositoryState.WARNING,
                                error_detail="not found in repositories",
                            )
                        )
                        continue
                    targets.append(catalog.get_repository(repo_name))
        else:
            targets = catalog.all_repositories()

        statuses: list[RepositoryStatus] = []
        summary = Summary(target_group=", ".join(groups), command_text="status")
        for _, status in run_concurrently(
            targets,
            lambda repository: self.repository_status(repository, cancel_event=cancel_event),
            max_workers=self.max_workers,
            on_error=lambda repository, exc: _error_status(repository, f"unexpected error: {exc}"),
            cancel_event=cancel_event,
        ):
            statuses.append(status)
            summary.add_result(status_to_result(status))
        summary.finalize(self._clock() - started)

        statuses.extend(warnings)
        statuses.sort(key=lambda item: item.repository)
        report = StatusReport(statuses=statuses, group_filter=tuple(groups), summary=summary)
        logger.info(
            "Status report total=%s clean=%s modified=%s errors=%s warnings=%s",
            report.total,
            report.clean,
            report.modified,
            report.errors,
            report.warnings,
        )
        return report
