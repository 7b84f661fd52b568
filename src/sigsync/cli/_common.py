"""Shared utilities for CLI command modules.

Provides the Rich console, logging setup, and the option set every
command uses to build SyncSettings.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click
from rich.console import Console

from ..config import load_settings
from ..models import SyncSettings

console = Console()
logger = logging.getLogger("sigsync.cli")

_OPTIONS = [
    click.argument("repo", required=False),
    click.option("--config", "config_file", type=click.Path(dir_okay=False),
                 help="YAML file with default settings."),
    click.option("--base-dir", type=click.Path(file_okay=False),
                 help="Directory repository paths are relative to."),
    click.option("--component", help="Component name (defaults to the repo basename)."),
    click.option("--branch", help="Branch to sync."),
    click.option("--url", "git_url", help="Explicit remote URL."),
    click.option("--remote", "git_remote", help="Fetch from this configured remote."),
    click.option("--base-url", "git_baseurl", help="Base URL for the default location."),
    click.option("--prefix", "git_prefix", help="Prefix placed before the component name."),
    click.option("--suffix", "git_suffix", help="Suffix placed after the component name."),
    click.option("--clean/--no-clean", default=None, help="Discard the copy and clone afresh."),
    click.option("--shallow/--no-shallow", default=None, help="Clone with depth 1."),
    click.option("--fetch-only/--merge", "fetch_only", default=None,
                 help="Stop after verification, leave the branch alone."),
    click.option("--ignore-missing/--require-branch", "ignore_missing", default=None,
                 help="Succeed quietly if the remote has no such branch."),
    click.option("--debug/--no-debug", default=None, help="Trace every git command."),
    click.option("--no-check", help="Space-separated components exempt from verification."),
    click.option("--allow-commit-sig",
                 help="Space-separated components for which a signed commit is enough."),
    click.option("--verifier", "verify_command", help="External verifier command."),
    click.option("--keyring", "keyring_dir", type=click.Path(file_okay=False),
                 help="GnuPG home holding the trusted keys."),
]


def settings_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the shared settings options to a command."""
    for option in reversed(_OPTIONS):
        func = option(func)
    return func


def build_settings(config_file: Optional[str], **overrides: Any) -> SyncSettings:
    """Merge config file, environment and CLI values into SyncSettings."""
    return load_settings(
        config_file=Path(config_file) if config_file else None,
        **overrides,
    )


def configure_logging(debug: bool) -> None:
    """Set up root logging once per process."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(name)s: %(message)s",
    )
    logging.getLogger("sigsync").setLevel(logging.DEBUG if debug else logging.INFO)


def trust_warning(component: str) -> str:
    """Rich markup for the reduced-trust banner."""
    return (
        "[bold white on red]"
        " VERIFICATION SKIPPED "
        "[/] "
        f"[bold red]{component} was accepted without any signature check[/]"
    )
