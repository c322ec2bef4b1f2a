"""Main Typer application: imports and registers all CLI commands.

Entry point: ``libeopkg`` (configured via pyproject.toml project.scripts).

Commands: info, diff, delta, verify.
"""

from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from libeopkg.cli.commands.delta import delta_cmd
from libeopkg.cli.commands.diff_cmd import diff_cmd
from libeopkg.cli.commands.info import info_cmd
from libeopkg.cli.commands.verify import verify_cmd
from libeopkg.config import settings

app = typer.Typer(
    name="libeopkg",
    help="Inspect, verify and build delta packages for .eopkg containers.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)


@app.callback()
def _configure(
    log_level: str = typer.Option(
        None, "--log-level", help="Override EOPKG_LOG_LEVEL for this run."
    ),
) -> None:
    """Configure logging once for every command."""
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


# Register subcommands
app.command(name="info", help="Show the descriptor of a package.")(info_cmd)
app.command(name="diff", help="List files changed or removed between two releases.")(diff_cmd)
app.command(name="delta", help="Build a delta package between two releases.")(delta_cmd)
app.command(name="verify", help="Verify an installed tree against a package.")(verify_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
