"""libeopkg CLI: Typer-based command-line interface.

A thin shell over the library: it configures logging, calls one library
operation per command and maps library errors to exit codes.

All output uses Rich for formatted terminal display.
"""
