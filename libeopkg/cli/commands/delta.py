"""``libeopkg delta OLD NEW``: build a delta package.

Exit codes: 0 on success, 2 when the two releases ship identical files,
1 for any other failure.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from libeopkg.core.delta import DeltaProducer
from libeopkg.core.errors import DeltaPointlessError, EopkgError

console = Console()

EXIT_POINTLESS = 2


def delta_cmd(
    old: Path = typer.Argument(..., help="The older (installed) .eopkg release."),
    new: Path = typer.Argument(..., help="The newer .eopkg release."),
    output_dir: Path = typer.Option(
        Path("."),
        "--output-dir",
        "-o",
        help="Directory the delta package is written to.",
    ),
    work_dir: Path = typer.Option(
        None,
        "--work-dir",
        "-w",
        help="Scratch directory for the job. Defaults to EOPKG_WORK_DIR.",
    ),
) -> None:
    """Build a delta package holding only the files changed between releases."""
    try:
        with DeltaProducer(old, new, base_dir=work_dir, output_dir=output_dir) as producer:
            out_path = producer.create()
    except DeltaPointlessError as exc:
        console.print(f"[bold yellow]Delta skipped:[/bold yellow] {exc}")
        raise typer.Exit(code=EXIT_POINTLESS)
    except (EopkgError, OSError) as exc:
        console.print(f"[bold red]Delta failed:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(str(out_path), highlight=False, soft_wrap=True)
