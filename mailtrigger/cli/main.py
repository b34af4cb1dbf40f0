"""Main CLI entry point for mailtrigger."""

import typer

from mailtrigger import __version__
from mailtrigger.cli import commands

app = typer.Typer(
    name="mailtrigger",
    help="Run shell commands when matching email arrives over IMAP",
    no_args_is_help=True,
)

# Register command groups
app.add_typer(commands.run.app, name="run")
app.add_typer(commands.config.app, name="config")


@app.command()
def version():
    """Show version information."""
    typer.echo(f"mailtrigger version {__version__}")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
