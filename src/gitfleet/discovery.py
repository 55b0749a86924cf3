"""Recursive git repository discovery for `gf config discover`."""

from __future__ import annotations

import logging as py_logging
import os
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field
from pathlib import Path

logger = py_logging.getLogger(__name__)

DEFAULT_IGNORES = {".venv", "node_modules", "__pycache__", ".pytest_cache"}
ALL_GROUP = "all"


@dataclass
class DiscoveryResult:
    root: Path
    repositories: dict[str, Path] = field(default_factory=dict)
    groups: dict[str, list[str]] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)


def _has_git_marker(path: Path) -> bool:
    return (path / ".git").exists()


def discover_repositories(root: str | Path, ignore_dirs: set[str] | None = None) -> list[Path]:
    """Find git repositories below ``root``.

    Descent stops at a repository, but its direct child directories are
    still checked so checkouts nested one level down are found.
    """
    start = Path(root).expanduser().resolve()
    if not start.exists() or not start.is_dir():
        return []

    ignored = DEFAULT_IGNORES | (ignore_dirs or set())
    seen: set[Path] = set()
    repos: list[Path] = []

    def _record(path: Path) -> None:
        resolved = path.resolve()
        if resolved not in seen:
            seen.add(resolved)
            repos.append(resolved)

    def _on_error(exc: OSError) -> None:
        logger.warning("Skipping unreadable path during discovery: %s", exc)

    for dirpath, dirnames, filenames in os.walk(start, topdown=True, onerror=_on_error):
        current = Path(dirpath)
        dirnames[:] = [
            name
            for name in dirnames
            if name not in ignored
        ]

        if ".git" in dirnames or ".git" in filenames:
            _record(current)
            for name in dirnames:
                if name != ".git" and _has_git_marker(current / name):
                    _record(current / name)
            dirnames[:] = []

    repos.sort(key=lambda item: str(item).lower())
    return repos


def group_by_parent(repositories: Sequence[Path], root: str | Path) -> dict[str, list[str]]:
    """Put each repository into a group per parent directory below ``root``.

    ``root/work/team/api`` joins ``work`` and ``team``. Every repository
    also joins the ``all`` group.
    """
    start = Path(root).expanduser().resolve()
    groups: dict[str, list[str]] = {}
    for repo in repositories:
        try:
            relative = repo.relative_to(start)
        except ValueError:
            logger.warning("Repository %s is outside %s; not grouping it by parent", repo, start)
            continue
        for part in relative.parent.parts:
            members = groups.setdefault(part, [])
            if repo.name not in members:
                members.append(repo.name)
    if repositories:
        groups[ALL_GROUP] = list(dict.fromkeys(repo.name for repo in repositories))
    return groups


def discover(
    root: str | Path,
    *,
    existing_names: Collection[str] = (),
    ignore_dirs: set[str] | None = None,
) -> DiscoveryResult:
    result = DiscoveryResult(root=Path(root).expanduser().resolve())
    fresh: list[Path] = []
    for path in discover_repositories(result.root, ignore_dirs):
        name = path.name
        if name in existing_names:
            logger.debug("Repository already configured, skipping name=%s path=%s", name, path)
            result.skipped.append(name)
            continue
        if name in result.repositories:
            logger.warning(
                "Repository name '%s' at %s is already taken by %s; skipping",
                name,
                path,
                result.repositories[name],
            )
            result.skipped.append(name)
            continue
        result.repositories[name] = path
        fresh.append(path)

    result.groups = group_by_parent(fresh, result.root)
    logger.info(
        "Discovery finished root=%s repositories=%s groups=%s skipped=%s",
        result.root,
        len(result.repositories),
        len(result.groups),
        len(result.skipped),
    )
    return result
