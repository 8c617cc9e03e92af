"""
Maps node type strings to the plugin that generates them.

The registry is passed explicitly to the validator and the orchestrator;
``default_registry()`` builds one holding every built-in plugin.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator

from dappforge.plugins.base import BasePlugin


class PluginRegistry:
    def __init__(self, plugins: list[BasePlugin] | None = None):
        self._plugins: dict[str, BasePlugin] = {}
        for plugin in plugins or []:
            self.register(plugin)

    def register(self, plugin: BasePlugin) -> BasePlugin:
        node_type = plugin.node_type
        if node_type in self._plugins:
            raise ValueError(f"A plugin is already registered for node type '{node_type}'")
        self._plugins[node_type] = plugin
        return plugin

    def get(self, node_type: str) -> BasePlugin | None:
        """Look up the plugin for a node type, returning None if unknown."""
        return self._plugins.get(node_type)

    def __iter__(self) -> Iterator[BasePlugin]:
        return iter(self._plugins.values())


def build_default_registry() -> PluginRegistry:
    from dappforge.plugins.erc8004_agent_runtime import Erc8004AgentRuntimePlugin
    from dappforge.plugins.frontend_scaffold import FrontendScaffoldPlugin
    from dappforge.plugins.ipfs_storage import IpfsStoragePlugin
    from dappforge.plugins.sdk_generator import SdkGeneratorPlugin
    from dappforge.plugins.stylus_contract import StylusContractPlugin
    from dappforge.plugins.wallet_auth import WalletAuthPlugin
    from dappforge.plugins.x402_paywall_api import X402PaywallPlugin

    return PluginRegistry([
        StylusContractPlugin(),
        Erc8004AgentRuntimePlugin(),
        X402PaywallPlugin(),
        SdkGeneratorPlugin(),
        FrontendScaffoldPlugin(),
        WalletAuthPlugin(),
        IpfsStoragePlugin(),
    ])


@lru_cache(maxsize=1)
def default_registry() -> PluginRegistry:
    """Shared registry of the built-in plugins."""
    return build_default_registry()
