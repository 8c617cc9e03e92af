"""
Plugin registration surface (read-only): metadata, ports, config JSON schema
and default config for every registered node type.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from dappforge.api.dependencies import get_plugin_registry
from dappforge.plugins.registry import PluginRegistry

router = APIRouter(prefix="/plugins")


@router.get("")
def list_plugins(registry: PluginRegistry = Depends(get_plugin_registry)) -> dict[str, Any]:
    return {"plugins": [plugin.describe() for plugin in registry]}


@router.get("/{node_type}")
def get_plugin(node_type: str, registry: PluginRegistry = Depends(get_plugin_registry)) -> dict[str, Any]:
    plugin = registry.get(node_type)
    if plugin is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotFound", "message": f"No plugin for node type '{node_type}'"},
        )
    return plugin.describe()
