"""Repository catalog built from the loaded configuration."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path

from gitfleet.config import AppConfig, RepositoryConfig
from gitfleet.errors import ExitCode, GitFleetError, GroupNotFoundError, RepositoryNotFoundError
from gitfleet.models import Group, RepositoryRef, strip_group_marker

logger = py_logging.getLogger(__name__)


class RepositoryCatalog:
    """Read-mostly view of repositories and groups.

    Lookups never touch the filesystem; path validity is checked by
    whoever executes against a repository.
    """

    def __init__(self, config: AppConfig | None = None) -> None:
        self.config = config or AppConfig()

    def get_repository(self, name: str) -> RepositoryRef:
        entry = self.config.repositories.get(name)
        if entry is None:
            raise RepositoryNotFoundError(name)
        return RepositoryRef(name=name, path=Path(entry.path).expanduser())

    def has_repository(self, name: str) -> bool:
        return name in self.config.repositories

    def has_group(self, name: str) -> bool:
        return name in self.config.groups

    def get_group(self, name: str) -> Group:
        members = self.config.groups.get(name)
        if members is None:
            raise GroupNotFoundError(name)
        return Group(name=name, repository_names=tuple(members))

    def group_names(self) -> list[str]:
        return sorted(self.config.groups)

    def all_groups(self) -> list[Group]:
        return [self.get_group(name) for name in self.group_names()]

    def all_repositories(self) -> list[RepositoryRef]:
        return [self.get_repository(name) for name in sorted(self.config.repositories)]

    def missing_references(self, group: Group) -> list[str]:
        return [name for name in group.repository_names if not self.has_repository(name)]

    def get_repositories_for_groups(self, names: Iterable[str]) -> list[RepositoryRef]:
        repositories: list[RepositoryRef] = []
        seen: set[str] = set()
        for group_name in names:
            group = self.get_group(group_name)
            for repo_name in group.repository_names:
                if repo_name in seen:
                    continue
                if not self.has_repository(repo_name):
                    logger.warning(
                        "Group '%s' references unknown repository '%s'; skipping",
                        group_name,
                        repo_name,
                    )
                    continue
                seen.add(repo_name)
                repositories.append(self.get_repository(repo_name))
        return repositories

    def add_repository(self, name: str, path: str | Path) -> RepositoryRef:
        repo_name = name.strip()
        if not repo_name:
            raise GitFleetError(
                "Repository name cannot be empty.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Usage: gf add repository <name> <path>",
            )
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_dir():
            raise GitFleetError(
                f"Path is not a directory: {resolved}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Point the repository at an existing checkout.",
            )
        repositories = dict(self.config.repositories)
        repositories[repo_name] = RepositoryConfig(path=str(resolved))
        self.config.repositories = repositories
        logger.info("Added repository name=%s path=%s", repo_name, resolved)
        return self.get_repository(repo_name)

    def add_discovered(
        self,
        repositories: Mapping[str, Path],
        groups: Mapping[str, Sequence[str]],
    ) -> None:
        """Register discovered repositories and merge their groups.

        Existing group members are kept; new members are appended.
        """
        merged_repositories = dict(self.config.repositories)
        for name, path in repositories.items():
            merged_repositories[name] = RepositoryConfig(path=str(path))
        merged_groups = {name: list(members) for name, members in self.config.groups.items()}
        for group_name, members in groups.items():
            current = merged_groups.setdefault(group_name, [])
            for member in members:
                if member not in current:
                    current.append(member)
        self.config.repositories = merged_repositories
        self.config.groups = merged_groups
        logger.info("Added discovered repositories=%s groups=%s", len(repositories), len(groups))

    def remove_repository(self, name: str) -> None:
        if not self.has_repository(name):
            raise RepositoryNotFoundError(name)
        repositories = dict(self.config.repositories)
        repositories.pop(name)
        self.config.repositories = repositories
        self.config.groups = {
            group_name: [member for member in members if member != name]
            for group_name, members in self.config.groups.items()
        }
        logger.info("Removed repository name=%s", name)

    def add_group(self, name: str, repository_names: Iterable[str]) -> Group:
        group_name = strip_group_marker(name.strip())
        members = [item for item in dict.fromkeys(repository_names) if item]
        if not group_name:
            raise GitFleetError(
                "Group name cannot be empty.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Usage: gf add group <name> <repository...>",
            )
        if not members:
            raise GitFleetError(
                f"Group '{group_name}' must contain at least one repository.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Usage: gf add group <name> <repository...>",
            )
        for repo_name in members:
            if not self.has_repository(repo_name):
                raise RepositoryNotFoundError(repo_name)
        groups = dict(self.config.groups)
        groups[group_name] = members
        self.config.groups = groups
        logger.info("Added group name=%s repositories=%s", group_name, len(members))
        return self.get_group(group_name)

    def remove_group(self, name: str) -> None:
        if not self.has_group(name):
            raise GroupNotFoundError(name)
        groups = dict(self.config.groups)
        groups.pop(name)
        self.config.groups = groups
        logger.info("Removed group name=%s", name)

    def find_closest(self, name: str) -> RepositoryRef:
        """Return the exact match for ``name`` or the most similar repository name."""
        if self.has_repository(name):
            return self.get_repository(name)

        best_name = ""
        best_score = 0.0
        for candidate in sorted(self.config.repositories):
            score = similarity(name, candidate)
            if score > best_score:
                best_score = score
                best_name = candidate
        if not best_name:
            raise RepositoryNotFoundError(name)
        logger.debug("Closest repository for '%s' is '%s' score=%.2f", name, best_name, best_score)
        return self.get_repository(best_name)


def levenshtein_distance(left: str, right: str) -> int:
    if not left:
        return len(right)
    if not right:
        return len(left)
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            if left_char == right_char:
                current.append(previous[j - 1])
            else:
                current.append(1 + min(previous[j], current[j - 1], previous[j - 1]))
        previous = current
    return previous[-1]


def similarity(query: str, candidate: str) -> float:
    """Score in [0, 1]; prefix agreement weighs more than edit distance."""
    a = query.lower()
    b = candidate.lower()
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    if a in b or b in a:
        return 0.9

    shortest = min(len(a), len(b))
    prefix = 0
    for left_char, right_char in zip(a, b):
        if left_char != right_char:
            break
        prefix += 1

    distance = levenshtein_distance(a, b)
    longest = max(len(a), len(b))
    if distance == 1 and longest > 3:
        return 0.85
    return 0.6 * (prefix / shortest) + 0.4 * (1.0 - distance / longest)
