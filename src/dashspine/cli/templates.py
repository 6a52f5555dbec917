"""
``dashspine templates``: template catalogue commands.
"""

from __future__ import annotations

from pathlib import Path

import typer

from dashspine.cli.utils import console, err_console, print_table
from dashspine.rendering.templates import TemplateStore, validate_templates

app = typer.Typer(no_args_is_help=True)


@app.command()
def validate(
    directory: Path | None = typer.Option(
        None, "--dir", help="Validate templates in this directory instead of the packaged set"
    ),
) -> None:
    """Check that every required template exists and parses."""
    checks = validate_templates(TemplateStore(directory), strict=False)
    print_table(
        [{"file": c.filename, "ok": "yes" if c.ok else "no", "error": c.error or ""} for c in checks],
        title="Templates",
    )
    failed = [c for c in checks if not c.ok]
    if failed:
        err_console.print(f"[bold red]{len(failed)} template(s) invalid[/bold red]")
        raise typer.Exit(code=1)
    console.print("[green]All templates valid.[/green]")
