"""Shared helpers for CLI commands."""

from __future__ import annotations

import json
from typing import Any

import click
from rich.console import Console

from rangefs.core.config import AppConfig


def get_context_objects(ctx: click.Context) -> tuple[AppConfig, Console, bool]:
    """Extract common context objects.

    Commands invoked without the main group (e.g. directly in tests) fall
    back to a default configuration and console.
    """
    obj = ctx.find_root().obj or {}
    config: AppConfig = obj.get("config") or AppConfig()
    console: Console = obj.get("console") or Console()
    verbose: bool = obj.get("verbose", False)
    return config, console, verbose


def output_json(data: dict[str, Any]) -> None:
    """Output data as JSON, bypassing Rich formatting."""
    click.echo(json.dumps(data, indent=2, default=str))
