"""
Plugin discovery and loading for shieldbot.

Plugins are discovered by scanning one directory for ``*.py`` files (files
starting with ``_`` are ignored). Each file is imported in isolation and
must expose a ``HANDLER`` attribute: a Handler object, a Handler class
(instantiated with no arguments) or a plain callable.

Loading is fail-soft per plugin: a file that raises on import or exposes no
usable handler is skipped and logged, and the remaining plugins still load.

Example:
    from shieldbot.plugins.loader import PluginLoader

    loader = PluginLoader("./plugins")
    handles = loader.load()
    for name in handles:
        print(f"Loaded: {name}")
    for name, reason in loader.errors.items():
        print(f"Skipped {name}: {reason}")
"""

from pathlib import Path
from typing import Any
import importlib.util
import logging
import sys
import traceback

from shieldbot.errors import PluginLoadError
from shieldbot.plugins.sdk import FunctionHandler, Handler, PluginHandle

logger = logging.getLogger(__name__)

HANDLER_ATTRIBUTE = "HANDLER"
_MODULE_PREFIX = "shieldbot_plugin_"


class PluginLoader:
    """Discovers and loads handler plugins from a directory.

    Attributes:
        _directory: Directory to scan.
        _errors: Reasons for plugins skipped during the last load.
    """

    def __init__(self, directory: str | Path = "./plugins"):
        """Initialize the plugin loader.

        Args:
            directory: Directory to scan for plugin files.
        """
        self._directory = Path(directory)
        self._errors: dict[str, str] = {}

    @property
    def directory(self) -> Path:
        return self._directory

    @property
    def errors(self) -> dict[str, str]:
        """Plugins skipped during the last ``load`` and why."""
        return dict(self._errors)

    def discover(self) -> list[Path]:
        """List candidate plugin files without importing them."""
        if not self._directory.is_dir():
            logger.debug(f"Plugin directory does not exist: {self._directory}")
            return []

        return sorted(
            p for p in self._directory.iterdir()
            if p.is_file() and p.suffix == ".py" and not p.name.startswith("_")
        )

    def load(self) -> dict[str, PluginHandle]:
        """Load every discovered plugin.

        Returns:
            Mapping of plugin name to PluginHandle for the plugins that
            loaded successfully.
        """
        self._errors.clear()
        handles: dict[str, PluginHandle] = {}

        for path in self.discover():
            try:
                handle = self.load_file(path)
            except PluginLoadError as e:
                self._errors[e.plugin_name] = e.reason
                logger.warning(f"Skipping plugin {e.plugin_name}: {e.reason}")
                if e.original is not None:
                    logger.debug("".join(traceback.format_exception(e.original)))
                continue

            handles[handle.name] = handle
            logger.info(f"Plugin loaded: {handle.name}")

        logger.info(f"Loaded {len(handles)} plugins from {self._directory}")
        return handles

    def load_file(self, path: Path) -> PluginHandle:
        """Import one plugin file and wrap its handler.

        Raises:
            PluginLoadError: If the file cannot be imported or exposes no
                usable handler.
        """
        name = path.stem
        module = self._import(path)

        if not hasattr(module, HANDLER_ATTRIBUTE):
            raise PluginLoadError(path, f"no {HANDLER_ATTRIBUTE} attribute")

        return PluginHandle(name=name, handler=self._as_handler(path, getattr(module, HANDLER_ATTRIBUTE)))

    def _import(self, path: Path) -> Any:
        module_name = f"{_MODULE_PREFIX}{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(path, "not an importable module")

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(path, f"import failed: {e}", e) from e
        return module

    def _as_handler(self, path: Path, obj: Any) -> Handler:
        if isinstance(obj, type):
            try:
                obj = obj()
            except Exception as e:
                raise PluginLoadError(path, f"handler class failed to initialize: {e}", e) from e

        if callable(getattr(obj, "handle", None)):
            return obj
        if callable(obj):
            return FunctionHandler(obj)

        raise PluginLoadError(path, f"{HANDLER_ATTRIBUTE} is not callable and has no handle()")

    def __repr__(self) -> str:
        return f"<PluginLoader dir={self._directory}>"
