"""
``dashspine credentials`` commands: tenant credential management.

Secret values are never printed.
"""

from __future__ import annotations

import typer

from dashspine.cli.utils import build_runtime, console, print_table
from dashspine.core.logging import redact
from dashspine.tenants.context import SECRET_KEYS

app = typer.Typer(no_args_is_help=True)


@app.command("set")
def set_credential(
    tenant_id: str = typer.Argument(..., help="Tenant id"),
    key: str = typer.Argument(..., help="Credential key, e.g. DB_HOST or DB_NAME_QOR"),
    value: str = typer.Argument(..., help="Credential value"),
    username: str | None = typer.Option(None, "--username", "-u", help="Tenant display name"),
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
) -> None:
    """Set one credential for a tenant."""
    rt = build_runtime(database_url=database)
    rt.store.set(tenant_id, key.upper(), value, username=username)
    console.print(f"[green]Set[/green] {key.upper()} for tenant {tenant_id}")


@app.command("list")
def list_credentials(
    tenant_id: str = typer.Argument(..., help="Tenant id"),
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
) -> None:
    """List a tenant's credentials with secrets redacted."""
    rt = build_runtime(database_url=database)
    values = rt.store.all(tenant_id)
    print_table(
        [
            {"key": k, "value": redact(v) if k in SECRET_KEYS else v}
            for k, v in sorted(values.items())
        ],
        title=f"Credentials for tenant {tenant_id}",
    )
