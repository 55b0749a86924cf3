"""Plain-text rendering of summaries, status reports and configuration."""

from __future__ import annotations

from pathlib import Path

from gitfleet.catalog import RepositoryCatalog
from gitfleet.discovery import DiscoveryResult
from gitfleet.models import NO_OUTPUT, RepositoryState, StatusReport, Summary

SEPARATOR = "-" * 60
_PATH_DISPLAY_LIMIT = 50


def display_path(path: str, limit: int = _PATH_DISPLAY_LIMIT) -> str:
    if len(path) <= limit:
        return path
    return "..." + path[-(limit - 3) :]


def _table(headers: list[str], rows: list[list[str]]) -> list[str]:
    widths = [len(header) for header in headers]
    for row in rows:
        for index, cell in enumerate(row):
            widths[index] = max(widths[index], len(cell))
    lines = ["  ".join(header.ljust(widths[index]) for index, header in enumerate(headers)).rstrip()]
    lines.append("  ".join("-" * width for width in widths))
    for row in rows:
        lines.append("  ".join(cell.ljust(widths[index]) for index, cell in enumerate(row)).rstrip())
    return lines


def _pairs(rows: list[tuple[str, str]]) -> list[str]:
    width = max((len(label) for label, _ in rows), default=0)
    return [f"{label.ljust(width)}  {value}" for label, value in rows]


def render_summary(summary: Summary) -> str:
    lines: list[str] = []
    for result in summary.sorted_results():
        if result.succeeded:
            lines.append(f"[ok] {result.repository}")
            lines.extend(f"  {line}" for line in result.output.splitlines())
        else:
            lines.append(f"[failed] {result.repository}: {result.error_detail}")
            if result.output and result.output != NO_OUTPUT:
                lines.extend(f"  {line}" for line in result.output.splitlines())
        lines.append(SEPARATOR)

    lines.append("Execution Summary")
    lines.extend(
        _pairs(
            [
                ("Successful repositories", str(summary.successful_executions)),
                ("Failed repositories", str(summary.failed_executions)),
                ("Target group", summary.target_group),
                ("Command executed", summary.command_text),
                ("Execution time", f"{summary.execution_time:.2f}s"),
            ]
        )
    )
    return "\n".join(lines)


def render_status(report: StatusReport) -> str:
    rows: list[list[str]] = []
    for status in report.statuses:
        if status.state in (RepositoryState.ERROR, RepositoryState.WARNING):
            counts = ["N/A", "N/A", "N/A"]
        else:
            counts = [str(status.created), str(status.modified), str(status.deleted)]
        rows.append(
            [
                status.repository,
                status.branch or "-",
                display_path(status.path),
                *counts,
                status.state.value,
            ]
        )

    lines = ["Git Fleet Status Report", ""]
    if rows:
        lines.extend(_table(["Repository", "Branch", "Path", "Created", "Modified", "Deleted", "Status"], rows))
        lines.append("")

    problems = [item for item in report.statuses if item.error_detail]
    for item in problems:
        lines.append(f"{item.state.value}: {item.repository}: {item.error_detail}")
    if problems:
        lines.append("")

    summary_rows = [
        ("Total repositories", str(report.total)),
        ("Clean repositories", str(report.clean)),
        ("Modified repositories", str(report.modified)),
        ("Error repositories", str(report.errors)),
    ]
    if report.warnings:
        summary_rows.append(("Warning repositories", str(report.warnings)))
    if report.group_filter:
        summary_rows.append(("Group filter", ", ".join(report.group_filter)))
    lines.extend(_pairs(summary_rows))
    return "\n".join(lines)


def render_config(catalog: RepositoryCatalog, config_path: Path) -> str:
    lines = ["Git Fleet Configuration", "", f"Config file: {config_path}", "", "Repositories:"]
    repositories = catalog.all_repositories()
    if not repositories:
        lines.append("  (none)")
    for repository in repositories:
        marker = "ok" if repository.is_valid_directory() else "missing"
        lines.append(f"  [{marker}] {repository.name} -> {repository.path}")

    lines.extend(["", "Groups:"])
    groups = catalog.all_groups()
    if not groups:
        lines.append("  (none)")
    for group in groups:
        lines.append(f"  {group.name} ({len(group)} repositories):")
        for repo_name in group.repository_names:
            if catalog.has_repository(repo_name):
                marker = "ok" if catalog.get_repository(repo_name).is_valid_directory() else "missing"
                lines.append(f"    [{marker}] {repo_name}")
            else:
                lines.append(f"    [?] {repo_name} (not found in repositories)")
    return "\n".join(lines)


def render_discovery(result: DiscoveryResult, config_path: Path) -> str:
    if not result.repositories:
        return f"No new Git repositories found under {result.root}"
    lines = [f"Discovered {len(result.repositories)} repositories under {result.root}", "", "Repositories:"]
    for name, path in sorted(result.repositories.items()):
        lines.append(f"  {name} -> {path}")
    lines.extend(["", "Groups:"])
    for group_name, members in sorted(result.groups.items()):
        lines.append(f"  {group_name}: {', '.join(members)}")
    if result.skipped:
        lines.extend(["", f"Skipped (name already configured): {', '.join(sorted(set(result.skipped)))}"])
    lines.extend(["", f"Saved to {config_path}"])
    return "\n".join(lines)


def render_validation(problems: list[str]) -> str:
    if not problems:
        return "Configuration is valid."
    return "\n".join(["Configuration problems:", *(f"  - {problem}" for problem in problems)])


def render_help(config_path: Path) -> str:
    return "\n".join(
        [
            "Git Fleet - run one command across groups of repositories",
            "",
            "Usage:",
            "  gf [options] @group [@group ...] <command...>   run a command on groups",
            "  gf [options] <group> <command...>                legacy single-group syntax",
            "  gf [options] <global-command>",
            "",
            "Global commands:",
            "  status, ls, -s, --status [@group ...]   git status for repositories",
            "  config, -c, --config [validate|init]    show, validate or create the config",
            "  config discover [directory]             add git repositories found below a directory",
            "  add repository <name> <path>            register a repository",
            "  add group <name> <repository...>        create or replace a group",
            "  remove repository|group <name>          unregister a repository or group",
            "  goto <name>                             print the path of a repository",
            "  help, -h, --help                        show this help",
            "  version, -v, --version                  show the version",
            "",
            "Options (before the command):",
            "  --config-file PATH   configuration file",
            "  --timeout SECONDS    per-repository timeout (0 disables it)",
            "  --max-workers N      concurrent repositories (0 = automatic)",
            "  --log-level LEVEL    DEBUG, INFO, WARN or ERROR",
            "  --log-file PATH      debug log file",
            "  -d, --debug          same as --log-level DEBUG",
            "",
            "Examples:",
            "  gf @frontend pull",
            "  gf @frontend @backend status",
            "  gf @api \"commit -m 'fix'\"",
            "",
            f"Config file: {config_path}",
        ]
    )
