"""``libeopkg info PACKAGE``: show the descriptor of a package."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from libeopkg.core.archive import Archive
from libeopkg.core.errors import EopkgError

console = Console()


def info_cmd(
    package: Path = typer.Argument(..., help="Path to the .eopkg file."),
) -> None:
    """Print name, version, release and file count of a package."""
    try:
        with Archive.open_all(package) as archive:
            pkg = archive.metadata.package
            file_count = len(archive.files)
    except (EopkgError, OSError) as exc:
        console.print(f"[bold red]Cannot read {package}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=archive.id, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Name", pkg.name)
    table.add_row("Version", pkg.version)
    table.add_row("Release", str(pkg.release))
    table.add_row("Architecture", pkg.architecture)
    table.add_row("Distribution", f"{pkg.distribution} {pkg.distribution_release}".strip())
    table.add_row("Source", pkg.source.name)
    if pkg.summary:
        table.add_row("Summary", pkg.summary[0].value)
    table.add_row("Files", str(file_count))
    console.print(table)
