"""
Device pairing flow for shieldbot.

An unregistered device links to an account with a pairing code. The flow
asks the operator for the account's phone-style identifier, requests a
code from the open session handle and shows it to the operator, who types
it into the phone app.

The identifier is asked for once per process and reused on every
reconnect until the device is registered.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

from shieldbot.errors import PairingError
from shieldbot.protocol.base import SessionHandle

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D+")


def normalize_identifier(raw: str) -> str:
    """Normalize a human-entered phone number.

    Strips a leading ``+`` or ``00`` international prefix, then every
    non-digit character: ``"+241 77 000 000"`` -> ``"24177000000"``.

    Raises:
        PairingError: If nothing usable is left.
    """
    value = (raw or "").strip()
    if value.startswith("+"):
        value = value[1:]
    elif value.startswith("00"):
        value = value[2:]
    digits = _NON_DIGITS.sub("", value)
    if not digits:
        raise PairingError(f"No digits in pairing identifier {raw!r}")
    return digits


def prompt_for_identifier() -> str:
    """Ask the operator for the account number on the terminal."""
    return Prompt.ask(
        "Enter your phone number with country code (e.g. +241 77 000 000)"
    )


def show_pairing_code(code: str, console: Console | None = None) -> None:
    """Display a pairing code in a panel."""
    console = console or Console()
    console.print(
        Panel(
            f"[bold]{code}[/bold]\n\n"
            "Open the app on your phone: Linked devices > Link with phone number.",
            title="Pairing code",
            border_style="green",
        )
    )


class PairingFlow:
    """
    Obtains the pairing identifier and requests pairing codes.

    Attributes:
        prompt: Blocking callable returning the raw identifier. Runs in a
            worker thread so the event loop keeps serving other tasks.
        display: Callable showing a pairing code to the operator.
    """

    def __init__(
        self,
        prompt: Callable[[], str] = prompt_for_identifier,
        display: Callable[[str], None] = show_pairing_code,
    ) -> None:
        self.prompt = prompt
        self.display = display
        self._identifier: str | None = None

    @property
    def identifier(self) -> str | None:
        """The normalized identifier, once obtained."""
        return self._identifier

    async def obtain_identifier(self) -> str:
        """Return the cached identifier, prompting on first use.

        Raises:
            PairingError: If the operator entered nothing usable.
        """
        if self._identifier is None:
            raw = await asyncio.to_thread(self.prompt)
            self._identifier = normalize_identifier(raw)
            logger.info("Pairing identifier captured")
        return self._identifier

    async def request_code(self, handle: SessionHandle) -> str | None:
        """Request and display a pairing code. Best-effort.

        Returns:
            The code, or None when the request failed (logged).
        """
        identifier = await self.obtain_identifier()
        try:
            code = await handle.request_pairing_code(identifier)
        except Exception as e:
            logger.error(f"Failed to request pairing code: {e}")
            return None
        logger.info("Pairing code issued")
        self.display(code)
        return code

    def reset(self) -> None:
        """Forget the cached identifier (used when re-pairing)."""
        self._identifier = None
