"""XDG config loading/saving."""

from __future__ import annotations

import json
import logging as py_logging
import os
import sys
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from gitfleet.errors import ConfigError

logger = py_logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.config/git-fleet/config.toml").expanduser()
CONFIG_PATH_ENV = "GITFLEET_CONFIG"
DEFAULT_THEME: Literal["dark", "light"] = "dark"
DEFAULT_TIMEOUT_SECONDS = 0
DEFAULT_MAX_WORKERS = 0
MAX_WORKERS_LIMIT = 64

_VALID_THEMES = {"dark", "light"}


class LegacyRepositoryEntry(TypedDict):
    path: str


class LegacyConfigFile(TypedDict, total=False):
    """Layout of the legacy `~/.config/git-fleet/.gfconfig.json` file."""

    repositories: dict[str, LegacyRepositoryEntry]
    groups: dict[str, list[str]]
    theme: str


class RepositoryConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    path: str


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    repositories: dict[str, RepositoryConfig] = Field(default_factory=dict)
    groups: dict[str, list[str]] = Field(default_factory=dict)
    theme: Literal["dark", "light"] = DEFAULT_THEME
    shell: str = ""
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, ge=0)
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, ge=0, le=MAX_WORKERS_LIMIT)

    @field_validator("theme")
    @classmethod
    def _validate_theme(cls, value: str) -> str:
        if value not in _VALID_THEMES:
            raise ValueError(f"Invalid theme: {value}")
        return value


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        env_path = os.getenv(CONFIG_PATH_ENV, "").strip()
        if env_path:
            return Path(env_path).expanduser()
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    if isinstance(value, list):
        return "[" + ", ".join(_toml_scalar(item) for item in value) + "]"
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _normalize_repositories(value: object) -> dict[str, RepositoryConfig]:
    if not isinstance(value, dict):
        return {}
    normalized: dict[str, RepositoryConfig] = {}
    for name, payload in value.items():
        if not isinstance(name, str) or not name.strip():
            continue
        if isinstance(payload, str):
            raw_path = payload
        elif isinstance(payload, dict) and isinstance(payload.get("path"), str):
            raw_path = payload["path"]
        else:
            logger.warning("Ignoring repository entry without a path: %s", name)
            continue
        repo_path = raw_path.strip()
        if not repo_path:
            logger.warning("Ignoring repository entry with an empty path: %s", name)
            continue
        normalized[name.strip()] = RepositoryConfig(path=repo_path)
    return normalized


def _normalize_groups(value: object) -> dict[str, list[str]]:
    if not isinstance(value, dict):
        return {}
    normalized: dict[str, list[str]] = {}
    for group_name, members in value.items():
        if not isinstance(group_name, str) or not group_name.strip() or not isinstance(members, list):
            continue
        names: list[str] = []
        seen: set[str] = set()
        for member in members:
            if not isinstance(member, str):
                continue
            repo_name = member.strip()
            if not repo_name or repo_name in seen:
                continue
            seen.add(repo_name)
            names.append(repo_name)
        normalized[group_name.strip()] = names
    return normalized


def _sanitize(raw: Mapping[str, object]) -> AppConfig:
    cfg = AppConfig()

    cfg.repositories = _normalize_repositories(raw.get("repositories", {}))
    cfg.groups = _normalize_groups(raw.get("groups", {}))

    theme = raw.get("theme", cfg.theme)
    if isinstance(theme, str) and theme.strip().lower() in _VALID_THEMES:
        cfg.theme = cast(Literal["dark", "light"], theme.strip().lower())
    elif theme:
        logger.warning("Unknown theme '%s' in config, defaulting to %s", theme, DEFAULT_THEME)

    shell = raw.get("shell", cfg.shell)
    if isinstance(shell, str):
        cfg.shell = shell.strip()

    timeout_seconds = raw.get("timeout_seconds", cfg.timeout_seconds)
    if isinstance(timeout_seconds, (int, float)) and not isinstance(timeout_seconds, bool) and timeout_seconds >= 0:
        cfg.timeout_seconds = float(timeout_seconds)

    max_workers = raw.get("max_workers", cfg.max_workers)
    if isinstance(max_workers, int) and not isinstance(max_workers, bool) and 0 <= max_workers <= MAX_WORKERS_LIMIT:
        cfg.max_workers = max_workers

    return cfg


def _load_legacy_json(resolved: Path) -> LegacyConfigFile:
    try:
        raw = json.loads(resolved.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(
            f"Invalid JSON in configuration file {resolved}",
            hint=f"Fix the syntax error at line {exc.lineno}.",
        ) from exc
    except OSError as exc:
        raise ConfigError(f"Configuration file is unreadable: {resolved}", hint=str(exc)) from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"Configuration file must contain an object: {resolved}")
    return cast(LegacyConfigFile, raw)


def load_config(path: str | Path | None = None) -> AppConfig:
    resolved = get_config_path(path)
    if not resolved.exists():
        logger.debug("Configuration file not found at %s; using defaults", resolved)
        return AppConfig()

    raw: Mapping[str, object]
    if resolved.suffix.lower() == ".json":
        raw = _load_legacy_json(resolved)
    else:
        try:
            with resolved.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(
                f"Invalid TOML in configuration file {resolved}",
                hint=str(exc),
            ) from exc
        except OSError as exc:
            raise ConfigError(f"Configuration file is unreadable: {resolved}", hint=str(exc)) from exc

    cfg = _sanitize(raw)
    logger.debug(
        "Configuration loaded path=%s repositories=%s groups=%s",
        resolved,
        len(cfg.repositories),
        len(cfg.groups),
    )
    return cfg


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    if resolved.suffix.lower() == ".json":
        resolved = resolved.with_suffix(".toml")
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"theme = {_toml_scalar(config.theme)}",
        f"shell = {_toml_scalar(config.shell)}",
        f"timeout_seconds = {_toml_scalar(config.timeout_seconds)}",
        f"max_workers = {_toml_scalar(config.max_workers)}",
    ]

    if config.groups:
        lines.append("")
        lines.append("[groups]")
        for group_name, members in sorted(config.groups.items()):
            lines.append(f'"{_escape(group_name)}" = {_toml_scalar(list(members))}')

    for name, repository in sorted(config.repositories.items()):
        lines.extend(
            [
                "",
                f'[repositories."{_escape(name)}"]',
                f"path = {_toml_scalar(repository.path)}",
            ]
        )

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    logger.debug("Configuration saved path=%s", resolved)
    return resolved


def create_default_config(path: str | Path | None = None) -> Path:
    config = AppConfig(
        repositories={"example-repo": RepositoryConfig(path="/path/to/your/repository")},
        groups={"all": ["example-repo"]},
    )
    return save_config(config, path)


def validate_config(config: AppConfig) -> list[str]:
    problems: list[str] = []
    for name, repository in sorted(config.repositories.items()):
        repo_path = Path(repository.path).expanduser()
        if not repo_path.is_absolute():
            problems.append(f"repository '{name}' path must be absolute: {repository.path}")
        elif not repo_path.is_dir():
            problems.append(f"repository '{name}' path is not a directory: {repository.path}")
    for group_name, members in sorted(config.groups.items()):
        if not members:
            problems.append(f"group '{group_name}' has no repositories")
        for repo_name in members:
            if repo_name not in config.repositories:
                problems.append(f"group '{group_name}' references unknown repository '{repo_name}'")
    return problems
