"""
shieldbot CLI - Inspection Commands

Commands:
    plugins list  - Load the plugin directory and list handlers
    ledger show   - Show conversations that received the invitation
    auth status   - Show stored credential state
    auth reset    - Delete stored credentials
    config show   - Display the effective configuration
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer

from shieldbot.cli import auth_app, config_app, ledger_app, plugins_app
from shieldbot.cli.output import (
    done,
    fail,
    render_fields,
    render_json,
    render_ledger,
    render_plugins,
    warn,
)
from shieldbot.config.settings import settings
from shieldbot.errors import PersistenceError
from shieldbot.plugins import PluginLoader
from shieldbot.storage import ContactLedger, CredentialStore


# ---------------------------------------------------------------------------
# plugins
# ---------------------------------------------------------------------------

@plugins_app.command("list")
def list_plugins(
    directory: Optional[Path] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Plugin directory (defaults to PLUGINS_DIR).",
    ),
) -> None:
    """
    Load every plugin and list the handlers found.

    Plugins that fail to load are reported with the reason.
    """
    loader = PluginLoader(directory or settings.PLUGINS_DIR)
    handles = loader.load()

    if not handles and not loader.errors:
        warn(f"No plugins found in {loader.directory}")
        return

    render_plugins(loader.directory, handles, loader.errors)


# ---------------------------------------------------------------------------
# ledger
# ---------------------------------------------------------------------------

@ledger_app.command("show")
def show_ledger(
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Ledger file (defaults to LEDGER_PATH).",
    ),
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Show conversations that already received the invitation.
    """
    ledger = ContactLedger(path or settings.LEDGER_PATH)
    entries = ledger.load()

    if format == "json":
        render_json(entries)
        return

    render_ledger(ledger.path, list(ledger.entries()))


# ---------------------------------------------------------------------------
# auth
# ---------------------------------------------------------------------------

@auth_app.command("status")
def auth_status(
    directory: Optional[Path] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Credential directory (defaults to AUTH_DIR).",
    ),
) -> None:
    """
    Show whether this device has stored, registered credentials.
    """
    store = CredentialStore(directory or settings.AUTH_DIR)
    exists = store.path.exists()
    bundle = store.load()
    render_fields(
        "Credentials",
        [
            ("Path", store.path),
            ("Stored", "yes" if exists else "no"),
            ("Registered", "yes" if bundle.registered else "no"),
            ("Fields", len(bundle.data)),
        ],
    )


@auth_app.command("reset")
def auth_reset(
    directory: Optional[Path] = typer.Option(
        None,
        "--dir",
        "-d",
        help="Credential directory (defaults to AUTH_DIR).",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation.",
    ),
) -> None:
    """
    Delete stored credentials; the next run pairs the device again.
    """
    store = CredentialStore(directory or settings.AUTH_DIR)
    if not store.path.exists():
        warn(f"No credentials stored at {store.path}")
        return

    if not yes and not typer.confirm(f"Delete {store.path}?"):
        warn("Credentials kept")
        raise typer.Exit(1)

    try:
        store.clear()
    except PersistenceError as e:
        fail(str(e))
        raise typer.Exit(1)
    done("Credentials removed", hint="Run 'shieldbot run' to pair again.")


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------

@config_app.command("show")
def show_config(
    format: str = typer.Option(
        "table",
        "--format",
        "-f",
        help="Output format: table, json.",
    ),
) -> None:
    """
    Display the effective configuration (environment and .env).
    """
    data = settings.model_dump()
    if format == "json":
        render_json(data)
        return
    render_fields("Configuration", sorted(data.items()))
