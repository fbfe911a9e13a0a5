import argparse
import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from slider.config import DEFAULT_WORKING_DIR, load_config
from slider.credentials import DEFAULT_CREDENTIALS_PATH, load_github_token
from slider.errors import ConfigurationError
from slider.github_client import GithubClient
from slider.local_repo import repository_factory
from slider.logging_config import configure_logging
from slider.operation import load_operation
from slider.operations import DEFAULT_OPERATION
from slider.report import render_report
from slider.walker import GithubWalker

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="slider",
        description="Apply an operation to many GitHub repositories through pull requests.",
    )
    scope = parser.add_mutually_exclusive_group(required=True)
    scope.add_argument("--organization", help="Walk every repository of this organization")
    scope.add_argument(
        "--user",
        action="store_true",
        help="Walk the repositories of the authenticated user",
    )
    parser.add_argument(
        "--operation",
        default=DEFAULT_OPERATION,
        help="Registered operation name or 'package.module:attribute'",
    )
    parser.add_argument("--pattern", default=".*", help="Regex matched against remote URLs")
    parser.add_argument("-d", "--dry-run", action="store_true", help="Dry run")
    parser.add_argument("--working-dir", default=str(DEFAULT_WORKING_DIR))
    parser.add_argument("--credentials-file", default=str(DEFAULT_CREDENTIALS_PATH))
    parser.add_argument(
        "--default-reviewer",
        action="append",
        default=[],
        help="Fallback reviewer for the built-in operation (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("SLIDER_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def install_stop_handlers(walker: GithubWalker) -> dict:
    """
    Route SIGINT/SIGTERM to `walker.request_stop()` so the walk ends at a repository
    boundary. A second signal falls back to the previous handlers.
    """
    previous = {}

    def handle_stop(signum, frame) -> None:
        logger.warning(
            "[walk] %s received; stopping after the current repository",
            signal.Signals(signum).name,
        )
        walker.request_stop()
        restore_handlers(previous)

    for sig in STOP_SIGNALS:
        previous[sig] = signal.signal(sig, handle_stop)
    return previous


def restore_handlers(previous: dict) -> None:
    for sig, handler in previous.items():
        signal.signal(sig, handler)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, force=True)

    try:
        config = load_config(
            working_dir=Path(args.working_dir),
            dry_run=args.dry_run,
            pattern=args.pattern,
        )
        options = {} if ":" in args.operation else {"default_reviewers": args.default_reviewer}
        operation = load_operation(args.operation, **options)
        token = load_github_token(Path(args.credentials_file))
    except ConfigurationError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    config.working_dir.mkdir(parents=True, exist_ok=True)
    walker = GithubWalker(
        GithubClient(token),
        operation,
        config,
        repository_factory(token=token, config=config),
    )
    previous = install_stop_handlers(walker)
    try:
        outcomes = asyncio.run(walker.walk(organization=args.organization, user=args.user))
    finally:
        restore_handlers(previous)
    render_report(outcomes, operation, dry_run=config.dry_run)
    return 0


if __name__ == "__main__":
    sys.exit(main())
