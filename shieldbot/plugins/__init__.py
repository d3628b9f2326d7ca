"""
Plugin system for shieldbot.

Plugins are business-logic handlers discovered by file name at startup:
    - PluginLoader: Discovers plugin files and loads their handlers
    - PluginRegistry: Read-only lookup table of loaded handlers
    - Handler / HandlerResult: The capability interface plugins implement

Example:
    from shieldbot.plugins import PluginLoader, PluginRegistry

    registry = PluginRegistry.from_loader(PluginLoader("./plugins"))
    print(registry.names())
"""

from shieldbot.plugins.sdk import (
    FunctionHandler,
    Handler,
    HandlerResult,
    PluginHandle,
)
from shieldbot.plugins.loader import (
    PluginLoadError,
    PluginLoader,
)
from shieldbot.plugins.registry import (
    PluginRegistry,
)

__all__ = [
    # SDK
    "FunctionHandler",
    "Handler",
    "HandlerResult",
    "PluginHandle",
    # Loader
    "PluginLoadError",
    "PluginLoader",
    # Registry
    "PluginRegistry",
]
