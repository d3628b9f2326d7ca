"""
shieldbot - Command Line Interface

Built with Typer for the command line and Rich for output.

Usage:
    $ shieldbot run
    $ shieldbot run --re-pair
    $ shieldbot plugins list
    $ shieldbot ledger show
    $ shieldbot auth status
    $ shieldbot config show

Sub-command Groups:
    plugins - Inspect handler plugins
    ledger  - Inspect the first-contact ledger
    auth    - Inspect or reset stored credentials
    config  - Show effective configuration
"""

from __future__ import annotations

import asyncio
import logging

import typer
from rich.logging import RichHandler

from shieldbot import __version__
from shieldbot.cli.output import console, done, fail, warn

# Create main application
app = typer.Typer(
    name="shieldbot",
    help="shieldbot - guarded messaging bot with plugin handlers",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

# Create sub-command groups
plugins_app = typer.Typer(name="plugins", help="Plugin commands", no_args_is_help=True)
ledger_app = typer.Typer(name="ledger", help="First-contact ledger commands", no_args_is_help=True)
auth_app = typer.Typer(name="auth", help="Credential commands", no_args_is_help=True)
config_app = typer.Typer(name="config", help="Configuration commands", no_args_is_help=True)

# Register sub-commands
app.add_typer(plugins_app, name="plugins")
app.add_typer(ledger_app, name="ledger")
app.add_typer(auth_app, name="auth")
app.add_typer(config_app, name="config")


def configure_logging(level: str | int) -> None:
    """Route all log records through a RichHandler at *level*."""
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"shieldbot version {__version__}")
        raise typer.Exit()


def verbose_callback(value: bool) -> None:
    """Set verbose mode."""
    if value:
        configure_logging(logging.DEBUG)


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        callback=verbose_callback,
        help="Enable debug logging.",
    ),
) -> None:
    """
    shieldbot - guarded messaging bot

    Keeps a messaging-network session alive and passes every inbound
    message through Shield, Sanitizer and Anti-Spam before plugin handlers
    see it.
    """
    pass


@app.command()
def run(
    re_pair: bool = typer.Option(
        False,
        "--re-pair",
        help="Discard stored credentials and pair this device again.",
    ),
    no_prompt: bool = typer.Option(
        False,
        "--no-prompt",
        help="Do not ask for a pairing number even if unregistered.",
    ),
) -> None:
    """
    Connect and process messages until logged out or interrupted.
    """
    from shieldbot.config.settings import settings
    from shieldbot.runtime import build_controller
    from shieldbot.session import ConnectionState

    if not logging.getLogger().handlers:
        configure_logging(settings.LOG_LEVEL)

    if no_prompt:
        settings = settings.model_copy(update={"PAIRING_PROMPT": False})

    try:
        controller = build_controller(settings)
    except (ValueError, ImportError, AttributeError, TypeError) as e:
        fail(
            f"Cannot build protocol client: {e}",
            hint="Set PROTOCOL_CLIENT=package.module:factory in the environment or .env",
        )
        raise typer.Exit(1)

    async def _serve() -> ConnectionState:
        try:
            return await controller.run(re_pair=re_pair)
        finally:
            await controller.stop()

    try:
        final = asyncio.run(_serve())
    except KeyboardInterrupt:
        done("Stopped")
        return

    if final == ConnectionState.CLOSED_TERMINAL:
        warn(
            "Session ended for good",
            reason="Run 'shieldbot run --re-pair' to link this device again.",
        )
        raise typer.Exit(1)


def _register_subcommands() -> None:
    """Register all subcommand modules."""
    from shieldbot.cli import commands  # noqa: F401


__all__ = [
    "app",
    "plugins_app",
    "ledger_app",
    "auth_app",
    "config_app",
    "configure_logging",
]


def cli() -> None:
    """Entry point for the CLI."""
    _register_subcommands()
    app()


if __name__ == "__main__":
    cli()
