"""Concurrent fan-out of one command across many repositories."""

from __future__ import annotations

import logging as py_logging
import subprocess
import threading
import time
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Protocol, TypeVar

from gitfleet.invocation import build_invocation
from gitfleet.models import NO_OUTPUT, Command, ExecutionResult, RepositoryRef, Summary

logger = py_logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_MAX_WORKERS = 32
_POLL_INTERVAL_SECONDS = 0.1
TIMEOUT_EXIT_CODE = 124
CANCELLED_EXIT_CODE = 130


class ExecutionCancelled(Exception):
    """Raised by a runner when the cancellation token fired mid-run."""


class ProcessRunner(Protocol):
    def __call__(
        self,
        argv: list[str],
        *,
        cwd: Path,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> subprocess.CompletedProcess[str]: ...


def _terminate(process: subprocess.Popen[str]) -> None:
    process.kill()
    try:
        process.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        logger.warning("Process pid=%s did not exit after kill", process.pid)


def run_process(
    argv: list[str],
    *,
    cwd: Path,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run ``argv`` in ``cwd`` with stdout and stderr merged and no stdin.

    Polls so that a timeout or a set ``cancel_event`` kills the child.
    """
    process = subprocess.Popen(
        argv,
        cwd=str(cwd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
    )
    started = time.monotonic()
    while True:
        try:
            stdout, _ = process.communicate(timeout=_POLL_INTERVAL_SECONDS)
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                _terminate(process)
                raise ExecutionCancelled(" ".join(argv)) from None
            if timeout is not None and time.monotonic() - started >= timeout:
                _terminate(process)
                raise subprocess.TimeoutExpired(argv, timeout) from None
            continue
        return subprocess.CompletedProcess(argv, process.returncode, stdout=stdout or "", stderr="")


def worker_count(task_count: int, max_workers: int | None = None) -> int:
    limit = max_workers if max_workers else DEFAULT_MAX_WORKERS
    return max(1, min(limit, task_count))


def run_concurrently(
    items: Sequence[T],
    task: Callable[[T], R],
    *,
    max_workers: int | None = None,
    on_error: Callable[[T, Exception], R],
    cancel_event: threading.Event | None = None,
) -> Iterator[tuple[T, R]]:
    """Yield ``(item, task(item))`` pairs in completion order.

    An exception escaping ``task`` is turned into a value by ``on_error`` so
    one item never aborts its siblings. An interrupt in the consuming
    thread sets ``cancel_event`` before the pool waits for its workers.
    """
    if not items:
        return
    with ThreadPoolExecutor(
        max_workers=worker_count(len(items), max_workers),
        thread_name_prefix="gitfleet",
    ) as pool:
        futures = {pool.submit(task, item): item for item in items}
        try:
            for future in as_completed(futures):
                item = futures[future]
                try:
                    result = future.result()
                except Exception as exc:
                    logger.exception("Unexpected failure while processing %s", item)
                    result = on_error(item, exc)
                yield item, result
        except BaseException:
            if cancel_event is not None:
                cancel_event.set()
            for future in futures:
                future.cancel()
            logger.warning("Fan-out interrupted; cancelling remaining tasks")
            raise


class ConcurrentExecutor:
    def __init__(
        self,
        runner: ProcessRunner = run_process,
        *,
        max_workers: int | None = None,
        timeout_seconds: float | None = None,
        shell: str = "",
        env: Mapping[str, str] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.runner = runner
        self.max_workers = max_workers
        self.timeout_seconds = timeout_seconds or None
        self.shell = shell
        self.env = env
        self._clock = clock

    def execute(
        self,
        repositories: Iterable[RepositoryRef],
        command: Command,
        *,
        target_group: str = "",
        cancel_event: threading.Event | None = None,
    ) -> Summary:
        targets = list(repositories)
        summary = Summary(target_group=target_group, command_text=command.text)
        started = self._clock()
        logger.info(
            "Executing command=%r repositories=%s group=%s",
            command.text,
            len(targets),
            target_group,
        )

        def _unexpected(repository: RepositoryRef, exc: Exception) -> ExecutionResult:
            return ExecutionResult(
                repository=repository.name,
                command=command.text,
                succeeded=False,
                error_detail=f"unexpected error: {exc}",
            )

        # The calling thread is the only writer of the summary.
        for _, result in run_concurrently(
            targets,
            lambda repository: self.execute_single(repository, command, cancel_event=cancel_event),
            max_workers=self.max_workers,
            on_error=_unexpected,
            cancel_event=cancel_event,
        ):
            summary.add_result(result)

        summary.finalize(self._clock() - started)
        logger.info(
            "Command finished command=%r successful=%s failed=%s elapsed=%.3fs",
            command.text,
            summary.successful_executions,
            summary.failed_executions,
            summary.execution_time,
        )
        return summary

    def _failed(
        self,
        repository: RepositoryRef,
        command: Command,
        started: float,
        detail: str,
        *,
        output: str = NO_OUTPUT,
        exit_code: int = -1,
    ) -> ExecutionResult:
        logger.warning("Command failed repository=%s detail=%s", repository.name, detail)
        return ExecutionResult(
            repository=repository.name,
            command=command.text,
            succeeded=False,
            output=output,
            error_detail=detail,
            duration=self._clock() - started,
            exit_code=exit_code,
        )

    def execute_single(
        self,
        repository: RepositoryRef,
        command: Command,
        *,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionResult:
        started = self._clock()
        if cancel_event is not None and cancel_event.is_set():
            return self._failed(repository, command, started, "cancelled before start", exit_code=CANCELLED_EXIT_CODE)

        if not repository.path.is_dir():
            return self._failed(repository, command, started, f"invalid directory: {repository.path}")

        invocation = build_invocation(command.args, env=self.env, shell=self.shell)
        argv = list(invocation.argv)
        logger.debug(
            "Running repository=%s strategy=%s argv=%s",
            repository.name,
            invocation.strategy.value,
            argv,
        )
        try:
            completed = self.runner(
                argv,
                cwd=repository.path,
                timeout=self.timeout_seconds,
                cancel_event=cancel_event,
            )
        except subprocess.TimeoutExpired:
            return self._failed(
                repository,
                command,
                started,
                f"timed out after {self.timeout_seconds}s",
                exit_code=TIMEOUT_EXIT_CODE,
            )
        except ExecutionCancelled:
            return self._failed(repository, command, started, "cancelled", exit_code=CANCELLED_EXIT_CODE)
        except OSError as exc:
            return self._failed(repository, command, started, f"failed to launch '{argv[0]}': {exc}")

        output = f"{completed.stdout or ''}{completed.stderr or ''}".strip() or NO_OUTPUT
        if completed.returncode != 0:
            return self._failed(
                repository,
                command,
                started,
                f"exit status {completed.returncode}",
                output=output,
                exit_code=completed.returncode,
            )

        logger.debug("Command succeeded repository=%s", repository.name)
        return ExecutionResult(
            repository=repository.name,
            command=command.text,
            succeeded=True,
            output=output,
            duration=self._clock() - started,
            exit_code=0,
        )
