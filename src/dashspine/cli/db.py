"""
``dashspine db``: state store commands.
"""

from __future__ import annotations

import typer
from sqlalchemy import inspect

from dashspine.cli.utils import build_runtime, console

app = typer.Typer(no_args_is_help=True)


@app.command()
def init(
    database: str | None = typer.Option(None, "--database", "-d", help="State store URL"),
) -> None:
    """Create the state store tables (idempotent)."""
    rt = build_runtime(database_url=database)
    tables = sorted(inspect(rt.engine).get_table_names())
    console.print(f"[green]State store ready[/green] ({', '.join(tables)})")
