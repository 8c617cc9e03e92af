"""
Injectable collaborators for the HTTP layer.

Tests swap these out with ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from dappforge.config import get_settings
from dappforge.plugins.registry import PluginRegistry, default_registry
from dappforge.services.orchestrator import GenerationOrchestrator
from dappforge.services.run_store import InMemoryRunStore, RunStore


@lru_cache(maxsize=1)
def _default_run_store() -> InMemoryRunStore:
    return InMemoryRunStore()


def get_run_store() -> RunStore:
    return _default_run_store()


def get_plugin_registry() -> PluginRegistry:
    return default_registry()


def get_orchestrator(
    store: RunStore = Depends(get_run_store),
    registry: PluginRegistry = Depends(get_plugin_registry),
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        store, registry, max_concurrency=get_settings().generation_max_concurrency
    )
