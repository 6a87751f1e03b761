"""HTTP Basic Auth credential commands."""

from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from siteforge.config import get_config
from siteforge.console import console
from siteforge.services import htpasswd

app = typer.Typer(no_args_is_help=True)


@app.command(name="hash")
def hash_password(
    user: str = typer.Argument(..., help="Username"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Password"),
    salt: Optional[str] = typer.Option(None, help="Fixed 8-character salt (random if omitted)"),
) -> None:
    """Print an apr1 htpasswd line for a user."""
    if ":" in user:
        console.print("[red]Error:[/red] username must not contain ':'")
        raise typer.Exit(2)
    typer.echo(htpasswd.create_htpasswd(user, password, salt=salt))


@app.command()
def verify(
    domain: str = typer.Argument(..., help="Protected domain"),
    user: str = typer.Argument(..., help="Username"),
    password: str = typer.Option(..., prompt=True, hide_input=True, help="Password"),
) -> None:
    """Check a password against a domain's deployed credentials."""
    cfg = get_config()
    digest = htpasswd.read_htpasswd_digest(cfg.htpasswd_dir / domain, user)
    if digest is None:
        console.print(f"[red]No credentials for {user} on {domain}.[/red]")
        raise typer.Exit(1)
    if not htpasswd.verify_apr1(password, digest):
        console.print("[red]Password does not match.[/red]")
        raise typer.Exit(1)
    console.print("[green]Password matches.[/green]")


@app.command(name="list")
def list_auth() -> None:
    """List domains with Basic Auth credentials deployed."""
    cfg = get_config()
    auth_dir = cfg.htpasswd_dir

    if not auth_dir.exists():
        console.print("No credential directory found.")
        return

    table = Table(title="HTTP Basic Auth")
    table.add_column("Domain", style="cyan")
    table.add_column("Users", style="green")

    for f in sorted(auth_dir.iterdir()):
        if f.is_file() and not f.name.startswith("."):
            table.add_row(f.name, ", ".join(htpasswd.read_htpasswd_users(f)))

    console.print(table)
