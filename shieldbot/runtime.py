"""Wiring: builds a ready-to-run SessionController from Settings."""

from __future__ import annotations

import logging

from shieldbot.config.settings import Settings
from shieldbot.pipeline import Dispatcher, FirstContactGreeter, MessagePipeline
from shieldbot.plugins import PluginLoader, PluginRegistry
from shieldbot.protocol import ProtocolClient, ReplySender, load_protocol_client
from shieldbot.security import (
    AntiSpam,
    AntiSpamConfig,
    Sanitizer,
    SanitizerConfig,
    Shield,
    ShieldConfig,
)
from shieldbot.session import BackoffPolicy, PairingFlow, SessionController
from shieldbot.storage import ContactLedger, CredentialStore

logger = logging.getLogger(__name__)


def build_pipeline(
    settings: Settings,
    sender: ReplySender,
    registry: PluginRegistry,
) -> MessagePipeline:
    """Assemble Shield -> Sanitizer -> Anti-Spam -> Dispatcher."""
    return MessagePipeline(
        shield=Shield(ShieldConfig.from_settings(settings)),
        sanitizer=Sanitizer(SanitizerConfig.from_settings(settings)),
        antispam=AntiSpam(sender, AntiSpamConfig.from_settings(settings)),
        dispatcher=Dispatcher(registry, sender),
    )


def build_controller(
    settings: Settings,
    client: ProtocolClient | None = None,
    pairing: PairingFlow | None = None,
) -> SessionController:
    """Create the controller and subscribe the pipeline and greeter to it.

    Args:
        settings: Runtime configuration.
        client: Protocol collaborator; built from PROTOCOL_CLIENT when None.
        pairing: Pairing flow override (tests, non-interactive runs).

    Raises:
        ValueError: If no protocol client is given or configured.
    """
    if client is None:
        if not settings.PROTOCOL_CLIENT:
            raise ValueError("PROTOCOL_CLIENT is not configured")
        client = load_protocol_client(settings.PROTOCOL_CLIENT)

    controller = SessionController(
        client,
        CredentialStore(settings.AUTH_DIR),
        pairing=pairing,
        backoff=BackoffPolicy.from_settings(settings),
        pairing_enabled=settings.PAIRING_PROMPT,
    )

    registry = PluginRegistry.from_loader(PluginLoader(settings.PLUGINS_DIR))
    logger.info(f"Loaded {len(registry)} plugin(s): {', '.join(registry.names()) or '-'}")

    pipeline = build_pipeline(settings, controller.sender, registry)
    greeter = FirstContactGreeter(
        ContactLedger(settings.LEDGER_PATH),
        controller.sender,
        settings.invite_text,
    )
    controller.add_message_consumer(pipeline.process)
    controller.add_message_consumer(greeter.observe)
    return controller
