from __future__ import annotations

import subprocess
import threading
import time
from pathlib import Path

import pytest

from gitfleet.executor import (
    CANCELLED_EXIT_CODE,
    TIMEOUT_EXIT_CODE,
    ConcurrentExecutor,
    ExecutionCancelled,
    worker_count,
)
from gitfleet.models import NO_OUTPUT, Command, RepositoryRef


def _cp(returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _repos(tmp_path: Path, *names: str) -> list[RepositoryRef]:
    refs = []
    for name in names:
        path = tmp_path / name
        path.mkdir()
        refs.append(RepositoryRef(name=name, path=path))
    return refs


def _command(*args: str) -> Command:
    return Command(verb=args[0], args=args)


def _assert_counts(summary, total: int, failed: int) -> None:
    assert summary.finalized is True
    assert summary.total_repositories == total == len(summary.results)
    assert summary.successful_executions + summary.failed_executions == total
    assert summary.failed_executions == failed


def test_execute_runs_command_in_every_repository(tmp_path: Path) -> None:
    calls: list[tuple[list[str], Path]] = []
    lock = threading.Lock()

    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        with lock:
            calls.append((argv, cwd))
        return _cp(0, stdout=f"{cwd.name} ok\n")

    repos = _repos(tmp_path, "api", "web", "docs")
    summary = ConcurrentExecutor(runner).execute(repos, _command("pull"), target_group="all")

    _assert_counts(summary, total=3, failed=0)
    assert summary.target_group == "all"
    assert summary.command_text == "pull"
    assert sorted(cwd.name for _, cwd in calls) == ["api", "docs", "web"]
    assert all(argv == ["git", "pull"] for argv, _ in calls)
    assert [result.output for result in summary.sorted_results()] == ["api ok", "docs ok", "web ok"]


def test_missing_directory_fails_without_stopping_siblings(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        return _cp(0, stdout="done")

    repos = _repos(tmp_path, "api", "web")
    repos.append(RepositoryRef(name="gone", path=tmp_path / "gone"))

    summary = ConcurrentExecutor(runner).execute(repos, _command("fetch"))

    _assert_counts(summary, total=3, failed=1)
    failed = summary.failed_results()
    assert [result.repository for result in failed] == ["gone"]
    assert failed[0].error_detail.startswith("invalid directory")
    assert summary.has_failures is True


def test_non_zero_exit_keeps_output_and_status(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        return _cp(2, stdout="fatal: not a git repository\n")

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "api"), _command("status"))

    result = summary.results[0]
    assert result.succeeded is False
    assert result.exit_code == 2
    assert result.error_detail == "exit status 2"
    assert result.output == "fatal: not a git repository"


def test_empty_output_uses_sentinel(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        return _cp(0, stdout="  \n")

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "api"), _command("fetch"))

    assert summary.results[0].output == NO_OUTPUT
    assert summary.results[0].succeeded is True


def test_launch_failure_becomes_failed_result(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "api"), _command("make", "build"))

    result = summary.results[0]
    assert result.succeeded is False
    assert result.error_detail.startswith("failed to launch 'make'")


def test_timeout_becomes_failed_result(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, timeout: float | None = None, **_: object) -> subprocess.CompletedProcess:
        assert timeout == 1.5
        raise subprocess.TimeoutExpired(argv, timeout)

    executor = ConcurrentExecutor(runner, timeout_seconds=1.5)
    summary = executor.execute(_repos(tmp_path, "api"), _command("fetch"))

    result = summary.results[0]
    assert result.succeeded is False
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert result.error_detail == "timed out after 1.5s"


def test_zero_timeout_means_unbounded(tmp_path: Path) -> None:
    seen: list[float | None] = []

    def runner(argv: list[str], *, cwd: Path, timeout: float | None = None, **_: object) -> subprocess.CompletedProcess:
        seen.append(timeout)
        return _cp(0)

    ConcurrentExecutor(runner, timeout_seconds=0).execute(_repos(tmp_path, "api"), _command("fetch"))

    assert seen == [None]


def test_cancelled_runner_becomes_failed_result(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        raise ExecutionCancelled("git fetch")

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "api"), _command("fetch"))

    assert summary.results[0].exit_code == CANCELLED_EXIT_CODE
    assert summary.results[0].error_detail == "cancelled"


def test_cancel_event_set_before_start_skips_every_repository(tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        calls.append(argv)
        return _cp(0)

    cancel = threading.Event()
    cancel.set()
    summary = ConcurrentExecutor(runner).execute(
        _repos(tmp_path, "api", "web"),
        _command("fetch"),
        cancel_event=cancel,
    )

    _assert_counts(summary, total=2, failed=2)
    assert calls == []
    assert {result.error_detail for result in summary.results} == {"cancelled before start"}


def test_interrupt_while_waiting_cancels_running_siblings(tmp_path: Path) -> None:
    web_started = threading.Event()
    observed: list[str] = []

    def runner(
        argv: list[str],
        *,
        cwd: Path,
        cancel_event: threading.Event | None = None,
        **_: object,
    ) -> subprocess.CompletedProcess:
        if cwd.name == "api":
            web_started.wait(5)
            raise KeyboardInterrupt
        web_started.set()
        assert cancel_event is not None
        if cancel_event.wait(5):
            observed.append(cwd.name)
            raise ExecutionCancelled(" ".join(argv))
        return _cp(0, stdout="ran to completion")

    cancel = threading.Event()
    started = time.monotonic()
    with pytest.raises(KeyboardInterrupt):
        ConcurrentExecutor(runner).execute(
            _repos(tmp_path, "api", "web"),
            _command("fetch"),
            cancel_event=cancel,
        )

    assert cancel.is_set()
    assert observed == ["web"]
    assert time.monotonic() - started < 4



def test_unexpected_runner_error_is_isolated(tmp_path: Path) -> None:
    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        if cwd.name == "api":
            raise RuntimeError("boom")
        return _cp(0, stdout="ok")

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "api", "web"), _command("fetch"))

    _assert_counts(summary, total=2, failed=1)
    assert summary.failed_results()[0].error_detail == "unexpected error: boom"


def test_repositories_run_concurrently(tmp_path: Path) -> None:
    barrier = threading.Barrier(3, timeout=5)

    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        barrier.wait()
        return _cp(0, stdout="ok")

    summary = ConcurrentExecutor(runner).execute(_repos(tmp_path, "a", "b", "c"), _command("fetch"))

    _assert_counts(summary, total=3, failed=0)


def test_shell_commands_use_configured_shell(tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
        calls.append(argv)
        return _cp(0)

    executor = ConcurrentExecutor(runner, shell="/bin/bash")
    executor.execute(_repos(tmp_path, "api"), _command("log --oneline | head -3"))

    assert calls == [["/bin/bash", "-c", "git log --oneline | head -3"]]


def test_empty_repository_list_yields_empty_finalized_summary() -> None:
    summary = ConcurrentExecutor().execute([], _command("fetch"))

    _assert_counts(summary, total=0, failed=0)
    assert summary.success_rate == 0.0


def test_worker_count_is_bounded() -> None:
    assert worker_count(0) == 1
    assert worker_count(5) == 5
    assert worker_count(100) == 32
    assert worker_count(100, max_workers=4) == 4
    assert worker_count(2, max_workers=8) == 2
