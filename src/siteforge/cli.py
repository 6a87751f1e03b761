"""Root Typer application for the siteforge CLI."""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from siteforge.commands import auth, cert, proxy, recovery, site

app = typer.Typer(
    name="siteforge",
    help="Compile site specs into NGINX configs and deploy them safely.",
    no_args_is_help=True,
)

app.add_typer(site.app, name="site", help="Compile, deploy and remove site configs.")
app.add_typer(auth.app, name="auth", help="HTTP Basic Auth credentials.")
app.add_typer(cert.app, name="cert", help="TLS certificate resolution.")
app.add_typer(recovery.app, name="recovery", help="Quarantined config recovery.")
app.add_typer(proxy.app, name="proxy", help="Proxy status and reload supervision.")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging."),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )


if __name__ == "__main__":
    app()
