"""Registry of available endpoint plugins."""

from __future__ import annotations

import logging
from dataclasses import dataclass

log = logging.getLogger(__name__)


@dataclass
class PluginEntry:
    """Metadata about a registered plugin."""

    name: str
    descr: str
    cls: type


class PluginRegistry:
    """Plugins known to this process, in registration order."""

    def __init__(self) -> None:
        self._plugins: dict[str, PluginEntry] = {}

    def register(self, cls: type) -> None:
        """Register a plugin class under the name its instances report."""
        instance = cls()
        if instance.name in self._plugins:
            raise ValueError(f"Plugin already registered: {instance.name!r}")
        self._plugins[instance.name] = PluginEntry(name=instance.name, descr=instance.descr, cls=cls)
        log.debug("Registered plugin: %s", instance.name)

    def get(self, name: str) -> object:
        """Instantiate a plugin by name."""
        entry = self._plugins.get(name)
        if entry is None:
            raise KeyError(f"plugin {name!r} not found")
        return entry.cls()

    def names(self) -> list[str]:
        return list(self._plugins)

    def list_all(self) -> list[PluginEntry]:
        return list(self._plugins.values())


def build_registry() -> PluginRegistry:
    """Create the registry with every built-in plugin. Called once at startup."""
    from llmq.providers.gpt import GptPlugin

    registry = PluginRegistry()
    registry.register(GptPlugin)
    return registry
