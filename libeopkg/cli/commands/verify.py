"""``libeopkg verify PACKAGE ROOT``: check an installed tree."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from libeopkg.core.archive import Archive
from libeopkg.core.errors import EopkgError, VerificationMismatchError

console = Console()


def verify_cmd(
    package: Path = typer.Argument(..., help="Path to the .eopkg file."),
    root: Path = typer.Argument(Path("/"), help="Installation root to check."),
) -> None:
    """Verify size, mode, ownership and content of every installed file."""
    try:
        with Archive.open(package) as archive:
            archive.verify(root)
            count = len(archive.files)
    except VerificationMismatchError as exc:
        console.print(f"[bold red]Verification failed:[/bold red] {exc}", highlight=False)
        raise typer.Exit(code=1)
    except (EopkgError, OSError) as exc:
        console.print(f"[bold red]Cannot verify {package}:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(f"[bold green]OK[/bold green] {count} files verified under {root}")
