"""Site compile, deploy and lifecycle commands."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.syntax import Syntax
from rich.table import Table

from siteforge.audit import audit, recent_events
from siteforge.config import get_config
from siteforge.console import abort, console
from siteforge.errors import SiteforgeError
from siteforge.services import factory
from siteforge.services.specfile import load_specs

app = typer.Typer(no_args_is_help=True)

SPEC_ARG = typer.Argument(..., exists=True, dir_okay=False, help="JSON site spec (object or list)")


@app.command(name="compile")
def compile_site(
    spec_file: Path = SPEC_ARG,
    domain: Optional[str] = typer.Option(None, help="Only compile this domain"),
) -> None:
    """Compile specs and print the resulting config without deploying it."""
    cfg = get_config()
    try:
        specs = [s for s in load_specs(spec_file) if domain is None or s.domain == domain]
        results = factory.build_compiler(cfg).compile_many(specs)
    except SiteforgeError as exc:
        abort(exc)

    for result in results:
        console.rule(f"[cyan]{result.config.domain}[/cyan]")
        for warning in result.warnings:
            console.print(f"[yellow]Warning:[/yellow] {warning}")
        console.print(Syntax(result.config.content, "nginx", line_numbers=False))


@app.command()
def deploy(
    spec_file: Path = SPEC_ARG,
    prune: bool = typer.Option(False, "--prune", help="Also remove configs for domains not in the file"),
) -> None:
    """Compile specs and write them to the active config store."""
    cfg = get_config()
    compiler = factory.build_compiler(cfg)
    deployer = factory.build_deployer(cfg)

    with audit("site.deploy", target=str(spec_file), prune=prune) as event:
        try:
            specs = load_specs(spec_file)
            enabled = [s for s in specs if s.enabled]
            results = compiler.compile_many(enabled, deployer.active_upstreams())
        except SiteforgeError as exc:
            event.result = "failure"
            event.error = str(exc)
            abort(exc)

        table = Table(title="Deployment")
        table.add_column("Domain", style="cyan")
        table.add_column("Result")
        table.add_column("Notes", style="yellow")

        failed = 0
        for result in results:
            outcome = deployer.write(result.config)
            if outcome.ok:
                table.add_row(outcome.domain, "[green]written[/green]", "; ".join(result.warnings))
            else:
                failed += 1
                table.add_row(outcome.domain, "[red]failed[/red]", outcome.error or "")

        for spec in specs:
            if not spec.enabled:
                outcome = deployer.remove(spec.domain)
                table.add_row(spec.domain, "disabled" if outcome.ok else "[red]failed[/red]", outcome.error or "")
                failed += 0 if outcome.ok else 1

        if prune:
            for orphan in deployer.prune_orphans(s.domain for s in enabled):
                table.add_row(orphan, "pruned", "")

        console.print(table)
        if failed:
            event.result = "failure"
            event.error = f"{failed} site(s) failed to deploy"
            console.print(f"[red]{failed} site(s) failed; previous configs left in place.[/red]")
            raise typer.Exit(1)
        console.print("[green]Reload requested.[/green] The supervisor will apply it.")


@app.command()
def remove(
    domain: str = typer.Argument(..., help="Domain to remove"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Remove a site's config and credentials from the active store."""
    cfg = get_config()
    if not yes and not typer.confirm(f"Remove the active config for {domain}?"):
        raise typer.Abort()

    with audit("site.remove", target=domain) as event:
        outcome = factory.build_deployer(cfg).remove(domain)
        if not outcome.ok:
            event.result = "failure"
            event.error = outcome.error
            console.print(f"[red]Error:[/red] {outcome.error}")
            raise typer.Exit(1)
        if outcome.reload_requested:
            console.print(f"[green]Removed {domain}.[/green] Reload requested.")
        else:
            console.print(f"No active config for {domain}.")


@app.command(name="list")
def list_sites() -> None:
    """List sites in the active config store."""
    cfg = get_config()
    deployer = factory.build_deployer(cfg)
    upstreams = {domain: name for name, domain in deployer.active_upstreams().items()}

    table = Table(title="Active Sites")
    table.add_column("Domain", style="cyan")
    table.add_column("Upstream", style="green")
    table.add_column("Auth", style="yellow")

    for domain in deployer.list_domains():
        has_auth = deployer.credential_path(domain).exists()
        table.add_row(domain, upstreams.get(domain, "-"), "yes" if has_auth else "no")

    console.print(table)
    if deployer.reload_requested():
        console.print("[yellow]A reload is pending.[/yellow]")


@app.command()
def show(domain: str = typer.Argument(..., help="Domain to show")) -> None:
    """Print the active config for a domain."""
    content = factory.build_deployer(get_config()).read(domain)
    if content is None:
        console.print(f"[red]Error:[/red] No active config for {domain}")
        raise typer.Exit(1)
    console.print(Syntax(content, "nginx", line_numbers=True))


@app.command()
def prune(
    spec_file: Path = SPEC_ARG,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Remove active configs whose domain is not in the spec file."""
    cfg = get_config()
    try:
        known = [s.domain for s in load_specs(spec_file) if s.enabled]
    except SiteforgeError as exc:
        abort(exc)

    deployer = factory.build_deployer(cfg)
    orphans = sorted(set(deployer.list_domains()) - set(known))
    if not orphans:
        console.print("Nothing to prune.")
        return
    if not yes:
        console.print("[bold red]About to remove:[/bold red] " + ", ".join(orphans))
        if not typer.confirm("Continue?"):
            raise typer.Abort()

    with audit("site.prune", target=str(spec_file), domains=orphans):
        removed = deployer.prune_orphans(known)
        console.print(f"[green]Pruned {len(removed)} config(s).[/green]")


@app.command()
def history(
    domain: Optional[str] = typer.Argument(None, help="Only show changes for this target"),
    limit: int = typer.Option(20, help="Number of entries"),
) -> None:
    """Show recent audited changes."""
    rows = recent_events(get_config().audit_db_path, target=domain, limit=limit)
    if not rows:
        console.print("No audit entries.")
        return

    table = Table(title="Audit Trail")
    table.add_column("Time", style="yellow")
    table.add_column("Actor")
    table.add_column("Action", style="cyan")
    table.add_column("Target")
    table.add_column("Result")
    for row in rows:
        colour = "green" if row["result"] == "success" else "red"
        table.add_row(row["timestamp"][:19], row["actor"], row["action"], row["target"], f"[{colour}]{row['result']}[/{colour}]")
    console.print(table)
