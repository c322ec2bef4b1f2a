"""``libeopkg diff OLD NEW``: list changed and removed files."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from libeopkg.core.archive import Archive
from libeopkg.core.errors import EopkgError

console = Console()


def diff_cmd(
    old: Path = typer.Argument(..., help="The older .eopkg release."),
    new: Path = typer.Argument(..., help="The newer .eopkg release."),
) -> None:
    """Print files that changed in NEW and files that NEW no longer ships."""
    try:
        with Archive.open_all(old) as left, Archive.open_all(new) as right:
            result = left.diff(right)
    except (EopkgError, OSError) as exc:
        console.print(f"[bold red]Diff failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    for entry in result.changed:
        console.print(f"[green]M[/green] {entry.path}", highlight=False)
    for entry in result.removed:
        console.print(f"[red]D[/red] {entry.path}", highlight=False)
    if result.is_empty:
        console.print("[dim]No differences.[/dim]")
