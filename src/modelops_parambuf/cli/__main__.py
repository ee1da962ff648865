"""parambuf CLI entry point.

Provides commands for inspecting buffer layouts and checking that a system's
values build a valid parameter store.
"""

import logging
import sys

import typer

from .layout import check_command, init_command, layout_command

# Create the main app
app = typer.Typer(
    name="parambuf",
    help="Inspect parameter buffer layouts of system descriptions",
    invoke_without_command=True,
)

app.command("layout")(layout_command)
app.command("check")(check_command)
app.command("init")(init_command)


@app.command("version")
def version():
    """Show version information."""
    from .. import __version__
    typer.echo(f"parambuf version {__version__}")


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output")
):
    """Inspect parameter buffer layouts of system descriptions."""
    if verbose:
        logging.basicConfig(level=logging.INFO)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        typer.echo("\nError: Missing command.", err=True)
        raise typer.Exit(1)


def cli_main():
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("\nAborted", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli_main()
