"""Run command implementation.

Loads and validates the configuration, then monitors mailboxes until
interrupted with SIGINT or SIGTERM.
"""

import asyncio
import signal
from pathlib import Path

import typer
from typing_extensions import Annotated

from mailtrigger.config import apply_overrides, load_config
from mailtrigger.errors import ConfigError
from mailtrigger.logging_config import setup_logging
from mailtrigger.monitor import MonitorEngine

app = typer.Typer(help="Monitor mailboxes and run trigger commands")


@app.callback(invoke_without_command=True)
def run(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file to use")
    ] = None,
    server: Annotated[str | None, typer.Option(help="IMAP server address")] = None,
    port: Annotated[int | None, typer.Option(help="IMAP server port")] = None,
    username: Annotated[str | None, typer.Option(help="IMAP username")] = None,
    password: Annotated[
        str | None,
        typer.Option(
            help="IMAP password", envvar="MAILTRIGGER_IMAP_PASSWORD", show_default=False
        ),
    ] = None,
    use_ssl: Annotated[
        bool | None,
        typer.Option("--use-ssl/--no-use-ssl", help="Use SSL for IMAP connection"),
    ] = None,
    check_interval: Annotated[
        int | None,
        typer.Option(help="Global interval in seconds to check for new emails"),
    ] = None,
    log_level: Annotated[
        str, typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING or ERROR")
    ] = "INFO",
):
    """Monitor mailboxes and run trigger commands until interrupted."""
    try:
        setup_logging(log_level)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)

    try:
        settings = load_config(config)
        settings = apply_overrides(
            settings,
            {
                "imap.server": server,
                "imap.port": port,
                "imap.username": username,
                "imap.password": password,
                "imap.use-ssl": use_ssl,
                "check-interval-seconds": check_interval,
            },
        )
        engine = MonitorEngine(settings)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    asyncio.run(_serve(engine))


async def _serve(engine: MonitorEngine) -> None:
    """Run the engine, stopping it cleanly on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, engine.stop)

    try:
        await engine.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)
