"""Project scaffolding for ``gcr --init``.

Writes ``.gcr.json``, an environment file template, an optional GitHub
Actions workflow and a ``.gitignore`` entry for the environment file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console

from gcr.config import (
    CONFIG_FILENAME,
    DEFAULT_FILE_NAME,
    DEFAULT_FOLDER_NAME,
    DEFAULT_KEY_PATH,
    DEFAULT_MAX_DIFF,
    DEFAULT_THRESHOLD,
    coverage_env_var,
)

logger = logging.getLogger(__name__)
console = Console()

ENV_FILENAME = ".env.github-coverage"
WORKFLOW_PATH = Path(".github") / "workflows" / "coverage-report.yml"
ALTERNATE_WORKFLOW_NAME = "coverage-report-new.yml"

_DEFAULT_TYPES: tuple[tuple[str, str], ...] = (
    ("backend", "coverage/coverage-summary.json"),
)


@dataclass
class InitResult:
    """Files touched by the init wizard."""

    config_path: Path
    env_path: Path | None = None
    workflow_path: Path | None = None
    gitignore_updated: bool = False
    skipped: list[Path] = field(default_factory=list)


def build_default_config() -> dict[str, Any]:
    """Build default configuration for quick/non-interactive mode."""
    return {
        "coverage": {
            "types": [
                {
                    "name": name,
                    "filePath": path,
                    "keyPath": DEFAULT_KEY_PATH,
                    "threshold": DEFAULT_THRESHOLD,
                }
                for name, path in _DEFAULT_TYPES
            ],
            "maxDiff": DEFAULT_MAX_DIFF,
        },
        "config": {
            "features": {"addComments": True, "setStatusChecks": True, "storeInS3": False},
            "s3": {"fileName": DEFAULT_FILE_NAME, "folderName": DEFAULT_FOLDER_NAME},
            "github": {"owner": "", "repo": "", "defaultTargetBranch": "main"},
        },
        "statusCheck": {"enabled": True, "context": "code-coverage"},
        "comment": {"enabled": True, "header": "", "footer": "", "updateExisting": False},
    }


def _prompt_coverage_types() -> list[dict[str, Any]]:
    """Prompt for one or more coverage types."""
    console.print()
    console.print("[bold]1. Coverage Types[/bold]")
    console.print()
    console.print("[dim]One entry per coverage summary (e.g. backend, frontend, lambda)[/dim]")

    types: list[dict[str, Any]] = []
    while True:
        console.print(f"\n[bold]Coverage type {len(types) + 1}[/bold]")
        name = click.prompt("Name", default="backend" if not types else "").strip()
        if not name:
            break
        types.append(
            {
                "name": name,
                "filePath": click.prompt(
                    "Coverage summary JSON path", default=f"{name}/coverage/coverage-summary.json"
                ),
                "keyPath": click.prompt("Key path to the percentage", default=DEFAULT_KEY_PATH),
                "threshold": click.prompt(
                    "Minimum coverage (%)",
                    type=click.FloatRange(0, 100),
                    default=DEFAULT_THRESHOLD,
                ),
            }
        )
        if not click.confirm("Add another coverage type?", default=False):
            break
    return types


def _prompt_github_config() -> dict[str, Any]:
    """Prompt for repository identity."""
    console.print()
    console.print("[bold]2. GitHub Repository[/bold]")
    console.print()
    return {
        "owner": click.prompt("Repository owner (org or user)", default=""),
        "repo": click.prompt("Repository name", default=""),
        "defaultTargetBranch": click.prompt("Default target branch", default="main"),
    }


def _prompt_s3_config() -> tuple[bool, dict[str, Any]]:
    """Prompt for coverage history storage."""
    console.print()
    console.print("[bold]3. Coverage History (S3)[/bold]")
    console.print()
    console.print("[dim]History lets gcr compare a PR against its base branch[/dim]")

    if not click.confirm("Store coverage history in S3?", default=False):
        return False, {"fileName": DEFAULT_FILE_NAME, "folderName": DEFAULT_FOLDER_NAME}

    s3: dict[str, Any] = {
        "bucketName": click.prompt("Bucket name"),
        "folderName": click.prompt("Folder name", default=DEFAULT_FOLDER_NAME),
        "fileName": click.prompt("File name", default=DEFAULT_FILE_NAME),
    }
    return True, s3


def interactive_config_setup() -> dict[str, Any]:
    """Interactive configuration setup."""
    console.print()
    console.print("[bold cyan]═══ github-coverage-reporter Setup ═══[/bold cyan]")

    config = build_default_config()
    types = _prompt_coverage_types()
    if types:
        config["coverage"]["types"] = types
    config["coverage"]["maxDiff"] = click.prompt(
        "Maximum allowed coverage drop (percentage points)",
        type=click.FloatRange(0),
        default=DEFAULT_MAX_DIFF,
    )
    config["config"]["github"] = _prompt_github_config()

    store_in_s3, s3 = _prompt_s3_config()
    config["config"]["s3"] = s3
    features = config["config"]["features"]
    features["storeInS3"] = store_in_s3

    console.print()
    console.print("[bold]4. Outputs[/bold]")
    console.print()
    features["addComments"] = click.confirm("Post a coverage comment on PRs?", default=True)
    features["setStatusChecks"] = click.confirm("Post commit status checks?", default=True)
    if features["addComments"]:
        config["comment"]["updateExisting"] = click.confirm(
            "Update the previous comment instead of adding a new one?", default=False
        )

    return config


def build_env_template(config: dict[str, Any]) -> str:
    """Environment file listing every variable gcr reads, with blank secrets."""
    lines = [
        "# github-coverage-reporter environment",
        "GITHUB_ACCESS_TOKEN=",
        f"GITHUB_OWNER={config['config']['github'].get('owner', '')}",
        f"GITHUB_REPO={config['config']['github'].get('repo', '')}",
        "GITHUB_CURR_BRANCH=",
        f"GITHUB_TARGET_BRANCH={config['config']['github'].get('defaultTargetBranch', '')}",
        "GITHUB_SHA=",
    ]
    if config["config"]["features"].get("storeInS3"):
        lines += [
            "",
            f"AWS_S3_BUCKET={config['config']['s3'].get('bucketName', '')}",
            "AWS_REGION=",
            "AWS_ACCESS_KEY_ID=",
            "AWS_SECRET_ACCESS_KEY=",
        ]
    lines.append("")
    lines += [f"{coverage_env_var(entry['name'])}=" for entry in config["coverage"]["types"]]
    return "\n".join(lines) + "\n"


def build_workflow(config: dict[str, Any]) -> dict[str, Any]:
    """Build a GitHub Actions workflow that runs gcr for every coverage type."""
    env: dict[str, str] = {
        "GITHUB_ACCESS_TOKEN": "${{ secrets.GITHUB_TOKEN }}",
        "GITHUB_CURR_BRANCH": "${{ github.head_ref || github.ref_name }}",
        "GITHUB_TARGET_BRANCH": "${{ github.base_ref }}",
        "GITHUB_SHA": "${{ github.event.pull_request.head.sha || github.sha }}",
    }
    if config["config"]["features"].get("storeInS3"):
        env.update(
            {
                "AWS_ACCESS_KEY_ID": "${{ secrets.AWS_ACCESS_KEY_ID }}",
                "AWS_SECRET_ACCESS_KEY": "${{ secrets.AWS_SECRET_ACCESS_KEY }}",
                "AWS_REGION": "${{ vars.AWS_REGION }}",
            }
        )

    target_branch = config["config"]["github"].get("defaultTargetBranch") or "main"
    return {
        "name": "Coverage Report",
        "on": {
            "pull_request": {"branches": [target_branch]},
            "push": {"branches": [target_branch]},
        },
        "permissions": {"contents": "read", "statuses": "write", "pull-requests": "write"},
        "jobs": {
            "coverage": {
                "runs-on": "ubuntu-latest",
                "steps": [
                    {"uses": "actions/checkout@v4"},
                    {"uses": "actions/setup-python@v5", "with": {"python-version": "3.12"}},
                    {
                        "name": "Install github-coverage-reporter",
                        "run": "pip install github-coverage-reporter",
                    },
                    {
                        "name": "Run tests with coverage",
                        "run": "echo 'Replace with your test command'",
                    },
                    {"name": "Report coverage", "run": "gcr --all", "env": env},
                ],
            }
        },
    }


def write_workflow(root: Path, workflow: dict[str, Any]) -> Path:
    """Write the workflow, next to an existing one rather than over it."""
    path = root / WORKFLOW_PATH
    if path.exists():
        path = path.with_name(ALTERNATE_WORKFLOW_NAME)
        logger.info("Workflow already exists; writing %s instead", path)

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        yaml.safe_dump(workflow, sort_keys=False, default_flow_style=False, width=120),
        encoding="utf-8",
    )
    return path


def update_gitignore(root: Path) -> bool:
    """Add the environment file to ``.gitignore``; return whether it changed."""
    path = root / ".gitignore"
    content = path.read_text(encoding="utf-8") if path.exists() else ""
    if ENV_FILENAME in content.splitlines():
        return False

    if content and not content.endswith("\n"):
        content += "\n"
    path.write_text(f"{content}\n# GitHub Coverage Reporter\n{ENV_FILENAME}\n", encoding="utf-8")
    return True


def run_init(root: Path, *, interactive: bool = True, force: bool = False) -> InitResult:
    """Scaffold gcr configuration in *root*.

    Args:
        root: Project directory.
        interactive: Prompt for values; otherwise write defaults.
        force: Overwrite an existing ``.gcr.json``.

    Raises:
        click.ClickException: If ``.gcr.json`` exists and *force* is false.
    """
    config_path = root / CONFIG_FILENAME
    if config_path.exists() and not force:
        if not interactive or not click.confirm(
            f"{CONFIG_FILENAME} already exists. Overwrite?", default=False
        ):
            raise click.ClickException(
                f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
            )

    config = interactive_config_setup() if interactive else build_default_config()
    config_path.write_text(json.dumps(config, indent=2) + "\n", encoding="utf-8")
    result = InitResult(config_path=config_path)

    env_path = root / ENV_FILENAME
    if env_path.exists():
        result.skipped.append(env_path)
    else:
        env_path.write_text(build_env_template(config), encoding="utf-8")
        result.env_path = env_path

    if not interactive or click.confirm("Create a GitHub Actions workflow?", default=True):
        result.workflow_path = write_workflow(root, build_workflow(config))

    result.gitignore_updated = update_gitignore(root)
    return result
