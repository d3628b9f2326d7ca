"""Load the protocol collaborator named in settings."""

from __future__ import annotations

import importlib
import logging

from .base import ProtocolClient

logger = logging.getLogger(__name__)


def load_protocol_client(target: str) -> ProtocolClient:
    """Import and build a protocol client from ``"package.module:factory"``.

    The factory may be a class or a zero-argument callable.

    Raises:
        ValueError: If the target is empty or malformed.
        ImportError: If the module cannot be imported.
        AttributeError: If the factory is missing.
        TypeError: If the built object does not satisfy ProtocolClient.
    """
    if not target or target.count(":") != 1:
        raise ValueError(f"Invalid protocol client target: {target!r}")

    module_path, attr = target.split(":")
    module = importlib.import_module(module_path)
    factory = getattr(module, attr)
    client = factory()

    if not isinstance(client, ProtocolClient):
        raise TypeError(f"{target} did not produce a ProtocolClient")

    logger.info(f"Loaded protocol client: {target}")
    return client
