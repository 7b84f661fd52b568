"""Sync commands: sync, resolve."""

from __future__ import annotations

import json
import sys
from typing import NoReturn

import click
from rich.panel import Panel

from ._common import (
    build_settings,
    configure_logging,
    console,
    settings_options,
    trust_warning,
)
from ..config import resolve_component
from ..engine import SyncEngine
from ..errors import SigsyncError
from ..models import SyncPhase, TrustPolicy


def _fail(exc: SigsyncError) -> NoReturn:
    console.print(f"  [bold red]{type(exc).__name__}:[/] {exc}\n")
    sys.exit(exc.exit_code)


def register_sync_commands(main: click.Group) -> None:
    """Register the sync and resolve commands."""

    @main.command("sync")
    @settings_options
    def sync(config_file, **options):
        """Fetch or clone REPO, verify the new revision, then merge it.

        REPO is a path relative to --base-dir, or "." for the current
        checkout. Unset options fall back to the environment and then
        to the --config file.
        """
        try:
            settings = build_settings(config_file, **options)
        except SigsyncError as exc:
            _fail(exc)
        configure_logging(settings.debug)

        label = settings.component or settings.repo or "?"
        console.print(f"\n  Syncing [cyan]{label}[/]...")
        engine = SyncEngine(settings)
        try:
            result = engine.run()
        except SigsyncError as exc:
            _fail(exc)

        if result.phase == SyncPhase.SKIPPED:
            console.print(
                f"  [yellow]Branch {result.branch} not on remote, skipped[/]\n"
            )
            return

        if result.verification_skipped:
            console.print(Panel(trust_warning(result.component), border_style="red"))

        short = (result.revision or "")[:12]
        if settings.fetch_only:
            console.print(f"  [green]verified[/] {result.branch} at [bold]{short}[/] (fetch only)\n")
        else:
            console.print(f"  [green]done[/] {result.branch} at [bold]{short}[/]\n")

    @main.command("resolve")
    @settings_options
    @click.option("--json-out", is_flag=True, help="Output as machine-readable JSON.")
    def resolve(config_file, json_out, **options):
        """Show where REPO would be synced from, without touching git."""
        try:
            component = resolve_component(build_settings(config_file, **options))
        except SigsyncError as exc:
            _fail(exc)

        if json_out:
            click.echo(json.dumps(component.model_dump(mode="json"), indent=2))
            return

        policy = component.policy
        policy_str = (
            "[bold red]none (unverified)[/]" if policy == TrustPolicy.NONE
            else f"[green]{policy.value}[/]"
        )
        console.print()
        console.print(
            Panel(
                f"Component: [cyan]{component.name}[/]\n"
                f"Path: {component.path}\n"
                f"URL: {component.url}\n"
                f"Branch: [bold]{component.branch}[/]\n"
                f"Remote: {component.remote}\n"
                f"Policy: {policy_str}",
                title="sigsync",
                border_style="magenta",
            )
        )
        console.print()
