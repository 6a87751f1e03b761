"""Shared rich console and error exit for CLI commands."""

from __future__ import annotations

from typing import NoReturn

import typer
from rich.console import Console

from siteforge.errors import SiteforgeError

console = Console()


def abort(exc: SiteforgeError) -> NoReturn:
    console.print(f"[red]Error:[/red] {exc}")
    raise typer.Exit(exc.exit_code)
