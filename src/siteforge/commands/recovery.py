"""Quarantine store commands."""

from __future__ import annotations

import typer
from rich.table import Table

from siteforge.audit import audit
from siteforge.config import get_config
from siteforge.console import abort, console
from siteforge.errors import SiteforgeError
from siteforge.services import factory

app = typer.Typer(no_args_is_help=True)


@app.command(name="list")
def list_quarantined() -> None:
    """List quarantined configs, newest first."""
    configs = factory.build_recovery(get_config()).list_quarantined()
    if not configs:
        console.print("No quarantined configs.")
        return

    table = Table(title="Quarantined Configs")
    table.add_column("Domain", style="cyan")
    table.add_column("Quarantined", style="yellow")
    table.add_column("Size", justify="right")
    for config in configs:
        table.add_row(config.domain, config.quarantined_at.strftime("%Y-%m-%d %H:%M:%S"), f"{config.size_bytes} B")
    console.print(table)


@app.command()
def restore(domain: str = typer.Argument(..., help="Domain to restore")) -> None:
    """Validate a quarantined config and put it back into service."""
    manager = factory.build_recovery(get_config())
    with audit("recovery.restore", target=domain) as event:
        try:
            result = manager.restore(domain)
        except SiteforgeError as exc:
            event.result = "failure"
            event.error = str(exc)
            abort(exc)
        if not result.ok:
            event.result = "failure"
            event.error = result.message
            console.print(f"[red]{result.message}[/red]")
            if result.output:
                console.print(result.output)
            raise typer.Exit(1)
        console.print(f"[green]{result.message}[/green]")


@app.command()
def discard(
    domain: str = typer.Argument(..., help="Domain to discard"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Permanently delete a quarantined config."""
    if not yes and not typer.confirm(f"Permanently delete the quarantined config for {domain}?"):
        raise typer.Abort()
    manager = factory.build_recovery(get_config())
    with audit("recovery.discard", target=domain) as event:
        try:
            manager.discard(domain)
        except SiteforgeError as exc:
            event.result = "failure"
            event.error = str(exc)
            abort(exc)
        console.print(f"[green]Quarantined config for {domain} deleted.[/green]")


@app.command()
def status() -> None:
    """Report emergency-fallback mode and quarantine count."""
    state = factory.build_recovery(get_config()).emergency_status()
    colour = "red" if state.emergency_mode else "green"
    console.print(f"Status: [{colour}]{state.status}[/{colour}]")
    console.print(f"Quarantined configs: {state.quarantined_count}")


@app.command()
def history(limit: int = typer.Option(100, help="Number of events to show")) -> None:
    """Show quarantine events, newest first."""
    events = factory.build_recovery(get_config()).history(limit)
    if not events:
        console.print("No quarantine events recorded.")
        return

    table = Table(title="Quarantine History")
    table.add_column("Time", style="yellow")
    table.add_column("Domain", style="cyan")
    table.add_column("Action")
    table.add_column("Detail", overflow="fold")
    for event in events:
        table.add_row(event.timestamp.strftime("%Y-%m-%d %H:%M:%S"), event.domain, event.action, event.detail)
    console.print(table)
