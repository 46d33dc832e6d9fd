"""gcr CLI: report code coverage to GitHub and record it in S3."""

from __future__ import annotations

import logging
import os
import sys
import traceback
from pathlib import Path
from typing import NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from gcr import __version__
from gcr.adapters.coverage_summary import CoverageSourceError
from gcr.config import (
    ConfigError,
    ReporterOptions,
    load_config_file,
    resolve_settings,
    validate_config,
)
from gcr.init_wizard import run_init
from gcr.orchestrator import CoverageOrchestrator, RunOptions
from gcr.reporters.terminal import reporter
from gcr.telemetry import SentrySettings, init_sentry, start_span

logger = logging.getLogger(__name__)
err_console = Console(stderr=True)

_NOISY_LOGGERS = ("botocore", "boto3", "urllib3", "s3transfer")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, markup=False)],
        force=True,
    )
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _is_interactive_terminal() -> bool:
    """Return True when running in an interactive terminal session."""
    return bool(sys.stdin.isatty() and sys.stdout.isatty())


def _fail(message: str, *, show_traceback: bool = False) -> NoReturn:
    err_console.print(f"[red]✗[/red] {escape(message)}", highlight=False)
    if show_traceback:
        traceback.print_exc()
    sys.exit(1)


def _init_project(force: bool) -> None:
    result = run_init(Path.cwd(), interactive=_is_interactive_terminal(), force=force)
    reporter.print_success(f"Created {result.config_path.name}")
    if result.env_path:
        reporter.print_success(f"Created {result.env_path.name}")
    if result.workflow_path:
        reporter.print_success(f"Created {result.workflow_path.relative_to(Path.cwd())}")
    if result.gitignore_updated:
        reporter.print_success("Updated .gitignore")
    for path in result.skipped:
        reporter.print_info(f"{path.name} already exists, skipped")
    reporter.print_info("Next: fill in the environment file and run `gcr --all`.")


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--name",
    "names",
    multiple=True,
    metavar="TYPE",
    help="Coverage type to report (repeatable).",
)
@click.option("--all", "all_types", is_flag=True, help="Report every type in .gcr.json.")
@click.option("--no-comments", is_flag=True, help="Do not post a PR comment.")
@click.option("--no-status", is_flag=True, help="Do not post commit status checks.")
@click.option("--no-s3", is_flag=True, help="Do not record coverage history in S3.")
@click.option(
    "--file",
    "file_path",
    type=click.Path(dir_okay=False),
    help="Coverage summary JSON file (single type only).",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Path to the configuration file (default: ./.gcr.json).",
)
@click.option(
    "--value",
    type=click.FloatRange(0, 100),
    help="Coverage percentage to report instead of reading a file (single type only).",
)
@click.option("--init", "init_project", is_flag=True, help="Create .gcr.json and a CI workflow.")
@click.option("--force", is_flag=True, help="With --init, overwrite an existing .gcr.json.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="gcr")
def cli(
    *,
    names: tuple[str, ...],
    all_types: bool,
    no_comments: bool,
    no_status: bool,
    no_s3: bool,
    file_path: str | None,
    config_path: str | None,
    value: float | None,
    init_project: bool,
    force: bool,
    verbose: bool,
) -> None:
    """Post code coverage to GitHub pull requests and track it over time.

    Reads a coverage summary per type, compares it with the value recorded
    for the pull request's base branch, posts commit status checks and a PR
    comment, then records the new value for the current branch.

    \b
    Examples:
      gcr --name=backend
      gcr --name=backend --name=frontend
      gcr --all --no-comments
      gcr --name=lambda --file=lambda/coverage-summary.json
    """
    _configure_logging(verbose)
    env = dict(os.environ)
    init_sentry(SentrySettings.from_env(env), env)

    if init_project:
        _init_project(force)
        return

    try:
        raw_config = load_config_file(config_path)
    except ConfigError as exc:
        logger.error("%s", exc)
        raw_config = None

    if raw_config is not None:
        for problem in validate_config(raw_config):
            reporter.print_warning(f"Configuration: {problem}")

    options = ReporterOptions(
        add_comments=False if no_comments else None,
        set_status_checks=False if no_status else None,
        store_in_s3=False if no_s3 else None,
    )
    settings = resolve_settings(options, raw_config, env)

    if all_types:
        coverage_types = settings.type_names
        if not coverage_types:
            _fail("--all requires coverage types in .gcr.json")
    else:
        coverage_types = list(dict.fromkeys(names))

    if len(coverage_types) > 1 and (file_path or value is not None):
        _fail("--file and --value can only be used with a single coverage type")

    run_options = RunOptions(
        coverage_type=coverage_types[0] if len(coverage_types) == 1 else None,
        coverage_types=coverage_types,
        file_path=file_path,
    )

    try:
        with start_span("gcr.run", "report coverage"):
            result = CoverageOrchestrator(settings, env=env).run(value, run_options)
    except (ConfigError, CoverageSourceError) as exc:
        _fail(str(exc))
    except Exception as exc:
        _fail(f"Coverage report failed: {exc}", show_traceback=True)

    reporter.print_run_summary(result, settings.thresholds, settings.max_diff)
    reporter.print_success("Coverage reported")
