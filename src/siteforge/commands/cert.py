"""TLS certificate commands."""

from __future__ import annotations

import typer
from rich.table import Table

from siteforge_common import ChallengeType

from siteforge.config import get_config
from siteforge.console import console
from siteforge.services import factory

app = typer.Typer(no_args_is_help=True)


@app.command()
def resolve(
    domain: str = typer.Argument(..., help="Domain to resolve a certificate for"),
    challenge: ChallengeType = typer.Option(ChallengeType.HTTP_01, help="Challenge type"),
) -> None:
    """Promote an ACME certificate or synthesize a snakeoil one."""
    outcome = factory.build_resolver(get_config()).resolve(domain, challenge)
    if not outcome.ok:
        console.print(f"[red]Certificate unavailable for {domain}:[/red] {outcome.error}")
        raise typer.Exit(1)
    if outcome.promoted:
        kind = "promoted ACME certificate"
    elif outcome.synthesized:
        kind = "self-signed certificate"
    else:
        kind = "existing certificate"
    console.print(f"[green]{domain}[/green]: {kind} at {outcome.cert_path}")


@app.command()
def status() -> None:
    """Show issuer and expiry for every live certificate."""
    resolver = factory.build_resolver(get_config())

    table = Table(title="TLS Certificates")
    table.add_column("Domain", style="cyan")
    table.add_column("Issuer")
    table.add_column("Expires", style="yellow")
    table.add_column("Days left")
    table.add_column("Self-signed")

    for domain in resolver.list_domains():
        info = resolver.describe(domain)
        if info["issuer"] is None:
            table.add_row(domain, "[red]missing[/red]", "-", "-", "-")
            continue
        days = info["days_remaining"]
        days_cell = f"[red]{days}[/red]" if days is not None and days < 14 else str(days)
        table.add_row(domain, str(info["issuer"]), str(info["expiry"]), days_cell, "yes" if info["self_signed"] else "no")

    console.print(table)
