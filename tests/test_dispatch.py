from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from gitfleet.catalog import RepositoryCatalog
from gitfleet.config import AppConfig, load_config
from gitfleet.dispatch import Dispatcher
from gitfleet.errors import ConfigError, ExitCode, GitFleetError, GroupNotFoundError, InvalidCommandError
from gitfleet.executor import ConcurrentExecutor
from gitfleet.resolver import resolve_arguments
from gitfleet.status import STATUS_COMMAND, StatusReporter


def _cp(returncode: int, stdout: str = "", stderr: str = "") -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def _runner(argv: list[str], *, cwd: Path, **_: object) -> subprocess.CompletedProcess:
    if tuple(argv) == STATUS_COMMAND:
        return _cp(0, stdout="?? new.txt\n" if cwd.name == "web" else "")
    if argv == ["git", "push"]:
        return _cp(1, stdout="rejected\n")
    return _cp(0, stdout=f"{' '.join(argv)} in {cwd.name}\n")


def _dispatcher(tmp_path: Path) -> Dispatcher:
    for name in ("api", "web"):
        (tmp_path / name / ".git").mkdir(parents=True)
    config = AppConfig(
        repositories={name: {"path": str(tmp_path / name)} for name in ("api", "web")},
        groups={"backend": ["api"], "all": ["api", "web"]},
    )
    return Dispatcher(
        RepositoryCatalog(config),
        config_path=tmp_path / "config.toml",
        executor=ConcurrentExecutor(_runner),
        status_reporter=StatusReporter(_runner),
        version="1.2.3",
    )


def _dispatch(dispatcher: Dispatcher, *args: str):
    return dispatcher.dispatch(resolve_arguments(list(args), dispatcher.catalog))


def test_help_and_version(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    assert "Usage:" in _dispatch(dispatcher).output
    assert "Usage:" in _dispatch(dispatcher, "--help").output
    assert _dispatch(dispatcher, "-v").output == "git-fleet 1.2.3"


def test_repository_command_runs_across_groups(tmp_path: Path) -> None:
    outcome = _dispatch(_dispatcher(tmp_path), "@backend", "@all", "fetch")

    assert outcome.exit_code == ExitCode.SUCCESS
    assert outcome.summary is not None
    assert outcome.summary.total_repositories == 2
    assert outcome.summary.target_group == "backend, all"
    assert "git fetch in web" in outcome.output


def test_repository_command_failures_map_to_execution_failed(tmp_path: Path) -> None:
    outcome = _dispatch(_dispatcher(tmp_path), "@all", "push")

    assert outcome.exit_code == ExitCode.EXECUTION_FAILED
    assert outcome.summary.failed_executions == 2
    assert "[failed] api: exit status 1" in outcome.output


def test_group_without_repositories_runs_nothing(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.catalog.config.groups = {**dispatcher.catalog.config.groups, "ghosts": ["nobody"]}

    outcome = _dispatch(dispatcher, "@ghosts", "fetch")

    assert outcome.summary is None
    assert outcome.exit_code == ExitCode.SUCCESS
    assert "No repositories found" in outcome.output


def test_status_dispatch_returns_report(tmp_path: Path) -> None:
    outcome = _dispatch(_dispatcher(tmp_path), "@all", "status")

    assert outcome.status_report is not None
    assert outcome.status_report.modified == 1
    assert outcome.status_report.clean == 1
    assert outcome.summary is outcome.status_report.summary
    assert "Git Fleet Status Report" in outcome.output


def test_config_show_and_validate(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    shown = _dispatch(dispatcher, "config")
    validated = _dispatch(dispatcher, "-c", "validate")

    assert "backend (1 repositories):" in shown.output
    assert validated.output == "Configuration is valid."
    assert validated.exit_code == ExitCode.SUCCESS


def test_config_validate_reports_problems(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    dispatcher.catalog.config.groups = {"backend": ["api", "ghost"]}

    outcome = _dispatch(dispatcher, "config", "validate")

    assert outcome.exit_code == ExitCode.VALIDATION_ERROR
    assert "ghost" in outcome.output


def test_config_init_refuses_to_overwrite(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    created = _dispatch(dispatcher, "config", "init")

    assert "Created configuration file" in created.output
    assert "example-repo" in load_config(tmp_path / "config.toml").repositories
    with pytest.raises(ConfigError):
        _dispatch(dispatcher, "config", "init")


def test_config_discover_adds_repositories_and_groups(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    checkouts = tmp_path / "checkouts"
    for relative in ("services/billing", "services/api", "tools/lint"):
        (checkouts / relative / ".git").mkdir(parents=True)

    outcome = _dispatch(dispatcher, "config", "discover", str(checkouts))

    assert outcome.exit_code == ExitCode.SUCCESS
    assert "Discovered 2 repositories" in outcome.output
    assert "Skipped (name already configured): api" in outcome.output
    saved = load_config(tmp_path / "config.toml")
    assert saved.repositories["billing"].path == str((checkouts / "services" / "billing").resolve())
    assert saved.repositories["api"].path == str(tmp_path / "api")
    assert saved.groups["services"] == ["billing"]
    assert saved.groups["tools"] == ["lint"]
    assert saved.groups["all"] == ["api", "web", "billing", "lint"]
    assert saved.groups["backend"] == ["api"]


def test_config_discover_defaults_to_working_directory(tmp_path: Path, monkeypatch) -> None:
    dispatcher = _dispatcher(tmp_path)
    empty = tmp_path / "empty"
    empty.mkdir()
    monkeypatch.chdir(empty)

    outcome = _dispatch(dispatcher, "-c", "discover")

    assert outcome.output == f"No new Git repositories found under {empty.resolve()}"
    assert not (tmp_path / "config.toml").exists()


def test_config_discover_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(GitFleetError) as excinfo:
        _dispatch(_dispatcher(tmp_path), "config", "discover", str(tmp_path / "nope"))

    assert excinfo.value.code == ExitCode.VALIDATION_ERROR


def test_add_and_remove_persist_configuration(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)
    (tmp_path / "docs").mkdir()

    _dispatch(dispatcher, "add", "repo", "docs", str(tmp_path / "docs"))
    _dispatch(dispatcher, "add", "group", "writing", "docs", "web")
    saved = load_config(tmp_path / "config.toml")
    assert "docs" in saved.repositories
    assert saved.groups["writing"] == ["docs", "web"]

    _dispatch(dispatcher, "rm", "repository", "web")
    _dispatch(dispatcher, "remove", "group", "@backend")
    saved = load_config(tmp_path / "config.toml")
    assert "web" not in saved.repositories
    assert saved.groups["writing"] == ["docs"]
    assert "backend" not in saved.groups


def test_group_names_keep_all_but_one_leading_marker(tmp_path: Path) -> None:
    dispatcher = _dispatcher(tmp_path)

    added = _dispatch(dispatcher, "add", "group", "@@ops", "api")
    assert added.output == "Added group '@ops' with 1 repositories"
    assert load_config(tmp_path / "config.toml").groups["@ops"] == ["api"]

    resolution = resolve_arguments(["@@ops", "pwd"], dispatcher.catalog)
    assert resolution.groups == ("@ops",)
    outcome = dispatcher.dispatch(resolution)
    assert outcome.exit_code == ExitCode.SUCCESS
    assert outcome.summary is not None and outcome.summary.total_repositories == 1

    _dispatch(dispatcher, "remove", "group", "@@ops")
    assert "@ops" not in load_config(tmp_path / "config.toml").groups


@pytest.mark.parametrize(
    "args",
    [
        ("add", "repository", "only-name"),
        ("add", "group", "lonely"),
        ("remove", "group"),
        ("goto",),
    ],
)
def test_builtin_arity_errors(tmp_path: Path, args: tuple[str, ...]) -> None:
    with pytest.raises(InvalidCommandError):
        _dispatch(_dispatcher(tmp_path), *args)


def test_remove_unknown_group_raises(tmp_path: Path) -> None:
    with pytest.raises(GroupNotFoundError):
        _dispatch(_dispatcher(tmp_path), "remove", "group", "mobile")


def test_goto_prints_closest_repository_path(tmp_path: Path) -> None:
    outcome = _dispatch(_dispatcher(tmp_path), "goto", "wbe")

    assert outcome.output == str(tmp_path / "web")
