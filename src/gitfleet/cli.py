"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import sys
import threading
from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from .catalog import RepositoryCatalog
from .config import MAX_WORKERS_LIMIT, get_config_path, load_config
from .dispatch import Dispatcher
from .errors import ExitCode, GitFleetError, user_facing_error
from .executor import CANCELLED_EXIT_CODE, ConcurrentExecutor, ProcessRunner, run_process
from .logging import configure_logging, default_log_path
from .resolver import resolve_arguments
from .status import StatusReporter

DISTRIBUTION_NAME = "git-fleet"

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_VALUE_OPTIONS = frozenset({"--config-file", "--log-level", "--log-file", "--timeout", "--max-workers"})
_FLAG_OPTIONS = frozenset({"-d", "--debug"})


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _timeout_type(value: str) -> float:
    try:
        seconds = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--timeout must be a number") from exc
    if seconds < 0:
        raise argparse.ArgumentTypeError("--timeout cannot be negative")
    return seconds


def _max_workers_type(value: str) -> int:
    try:
        count = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("--max-workers must be an integer") from exc
    if count < 0 or count > MAX_WORKERS_LIMIT:
        raise argparse.ArgumentTypeError(f"--max-workers must be between 0 and {MAX_WORKERS_LIMIT}")
    return count


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gf", add_help=False)
    parser.add_argument("--config-file", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="WARN")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument("--timeout", type=_timeout_type, default=None)
    parser.add_argument("--max-workers", type=_max_workers_type, default=None)
    parser.add_argument("-d", "--debug", action="store_true")
    return parser


def split_arguments(argv: Sequence[str]) -> tuple[list[str], list[str]]:
    """Split leading `gf` options from the command tokens that follow them.

    Everything after the first token that is not a known option belongs to
    the command, so ``gf @api log -d`` passes ``-d`` through to git.
    """
    tokens = list(argv)
    options: list[str] = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        name = token.split("=", 1)[0]
        if token in _FLAG_OPTIONS:
            options.append(token)
            index += 1
        elif name in _VALUE_OPTIONS:
            options.append(token)
            index += 1
            if "=" not in token and index < len(tokens):
                options.append(tokens[index])
                index += 1
        else:
            break
    return options, tokens[index:]


def package_version() -> str:
    try:
        return version(DISTRIBUTION_NAME)
    except PackageNotFoundError:
        return "dev"


def build_dispatcher(
    namespace: argparse.Namespace,
    *,
    runner: ProcessRunner = run_process,
) -> Dispatcher:
    config_path = get_config_path(namespace.config_file)
    config = load_config(config_path)
    timeout_seconds = namespace.timeout if namespace.timeout is not None else config.timeout_seconds
    max_workers = namespace.max_workers if namespace.max_workers is not None else config.max_workers
    return Dispatcher(
        RepositoryCatalog(config),
        config_path=config_path,
        executor=ConcurrentExecutor(
            runner,
            max_workers=max_workers or None,
            timeout_seconds=timeout_seconds or None,
            shell=config.shell,
        ),
        status_reporter=StatusReporter(
            runner,
            max_workers=max_workers or None,
            timeout_seconds=timeout_seconds or None,
        ),
        version=package_version(),
    )


def main(
    argv: Sequence[str] | None = None,
    *,
    runner: ProcessRunner = run_process,
    cancel_event: threading.Event | None = None,
) -> int:
    if cancel_event is None:
        cancel_event = threading.Event()
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    raw_argv = list(argv) if argv is not None else list(sys.argv[1:])
    option_tokens, command_tokens = split_arguments(raw_argv)

    parser = build_parser()
    try:
        namespace = parser.parse_args(option_tokens)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    level = "DEBUG" if namespace.debug else namespace.log_level
    logger = configure_logging(level=level, log_file=log_path)

    try:
        dispatcher = build_dispatcher(namespace, runner=runner)
        resolution = resolve_arguments(command_tokens, dispatcher.catalog)
        outcome = dispatcher.dispatch(resolution, cancel_event=cancel_event)
        if outcome.output:
            print(outcome.output)
        if outcome.summary is not None and outcome.summary.has_failures:
            logger.info(
                "Execution finished with failures failed=%s total=%s",
                outcome.summary.failed_executions,
                outcome.summary.total_repositories,
            )
        return int(outcome.exit_code)
    except GitFleetError as exc:
        logger.error(
            "Handled GitFleetError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except KeyboardInterrupt:
        logger.warning("Interrupted by user; running commands were cancelled")
        cancel_event.set()
        return CANCELLED_EXIT_CODE
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        hint = f"Inspect logs: {log_path}"
        print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv, cancel_event=threading.Event())
