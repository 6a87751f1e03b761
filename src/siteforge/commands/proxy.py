"""Proxy status and reload supervision commands."""

from __future__ import annotations

import typer

from siteforge_common import AuditEvent

from siteforge.audit import audit
from siteforge.config import get_config
from siteforge.console import console
from siteforge.services import factory
from siteforge.services.supervisor import SupervisorReport

app = typer.Typer(no_args_is_help=True)


@app.command()
def status() -> None:
    """Run the proxy config test and show pending reload state."""
    cfg = get_config()
    result = factory.build_proxy(cfg).test_config()
    if result.ok:
        console.print("[green]Config test passed.[/green]")
    else:
        console.print("[red]Config test failed.[/red]")
    if result.output:
        console.print(result.output)
    pending = factory.build_deployer(cfg).reload_requested()
    console.print(f"Reload pending: {'yes' if pending else 'no'}")
    if not result.ok:
        raise typer.Exit(1)


def _report_cycle(report: SupervisorReport, event: AuditEvent) -> None:
    for domain in report.quarantined:
        console.print(f"[yellow]Quarantined:[/yellow] {domain}")
    if report.status == "idle":
        console.print("No reload pending.")
    elif report.status == "failed":
        event.result = "failure"
        event.error = report.output
        console.print("[red]Reload failed; the proxy keeps its last good config.[/red]")
        if report.output:
            console.print(report.output)
    else:
        console.print(f"[green]NGINX {report.status}.[/green]")


def _audit_watch_cycle(report: SupervisorReport) -> None:
    with audit("proxy.supervise", mode="watch") as event:
        _report_cycle(report, event)


@app.command()
def supervise(
    watch: bool = typer.Option(False, "--watch", help="Keep running and poll the reload flag"),
    interval: float = typer.Option(5.0, help="Seconds between polls with --watch"),
) -> None:
    """Apply a pending reload, quarantining configs that break the proxy."""
    supervisor = factory.build_supervisor(get_config())
    if watch:
        console.print(f"Watching for reload requests every {interval}s (Ctrl+C to stop)")
        try:
            supervisor.watch(interval, on_cycle=_audit_watch_cycle)
        except KeyboardInterrupt:
            console.print("Stopped.")
        return

    with audit("proxy.supervise") as event:
        report = supervisor.run_once()
        _report_cycle(report, event)
    if report.status == "failed":
        raise typer.Exit(1)
