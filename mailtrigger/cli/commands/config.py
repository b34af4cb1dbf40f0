"""Config command implementation.

Creates, displays and checks the mailtrigger configuration.
"""

from pathlib import Path

import typer
from typing_extensions import Annotated

from mailtrigger.config import CONFIG_FILE, dump_config, init_config, load_config, validate_config
from mailtrigger.errors import ConfigError
from mailtrigger.monitor import compile_mailboxes, group_by_interval

app = typer.Typer(help="Manage configuration")

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Config file to use")
]


@app.command()
def init(
    config: ConfigOption = None,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Overwrite existing config")
    ] = False,
):
    """Create a template config file."""
    path = config or CONFIG_FILE
    created = init_config(config, overwrite=force)

    if created:
        typer.echo(f"Created config file: {path}")
        typer.echo()
        typer.echo("Edit the config file to add your server, mailboxes and triggers.")
    else:
        typer.echo(f"Config already exists at {path}")
        typer.echo("Use --force to overwrite.")


@app.command()
def show(config: ConfigOption = None):
    """Display the effective configuration.

    Defaults are filled in; the password is redacted.
    """
    try:
        settings = load_config(config)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(dump_config(settings), nl=False)


@app.command()
def validate(config: ConfigOption = None):
    """Check the configuration and compile every trigger."""
    try:
        settings = load_config(config)
        validate_config(settings)
        mailboxes = compile_mailboxes(settings)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    imap = settings["imap"]
    scheme = "imaps" if imap.get("use-ssl", True) else "imap"
    typer.echo(f"Server: {scheme}://{imap['server']}:{imap['port']}")

    for interval, group in group_by_interval(mailboxes).items():
        typer.echo(f"Every {interval}s:")
        for mailbox in group:
            typer.echo(f"  {mailbox.name}: {len(mailbox.triggers)} triggers")

    typer.echo("Configuration is valid.")
