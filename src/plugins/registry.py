"""
Reconciler registry - maps resource types to the plugin that owns them.

The built-in DMS endpoint reconciler is always registered; further
reconcilers can be installed as packages exposing an entry point.
"""

import logging
from importlib.metadata import entry_points
from typing import Any, Dict, List, Optional, Type

from plugins.reconcilers.base import ReconcilerPlugin

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "dms_operator.reconcilers"


class PluginRegistry:
    """Reconciler classes by name, with one instance of each created on demand."""

    def __init__(self):
        self._reconciler_plugins: Dict[str, Type[ReconcilerPlugin]] = {}
        self._reconciler_plugin_info: Dict[str, Dict[str, Any]] = {}
        self._reconciler_instances: Dict[str, ReconcilerPlugin] = {}

        # resource type -> reconciler name; a type has a single owner
        self._resource_type_to_reconciler: Dict[str, str] = {}

    def register_reconciler_plugin(self, plugin_class: Type[ReconcilerPlugin]) -> None:
        """
        Add a reconciler class and claim its resource types.

        Raises:
            ValueError: If another reconciler already owns one of the types.
        """
        instance = plugin_class()
        name = instance.name
        resource_types = instance.resource_types

        if name in self._reconciler_plugins:
            logger.warning(f"Replacing reconciler {name}")

        for rt in resource_types:
            existing = self._resource_type_to_reconciler.get(rt)
            if existing and existing != name:
                raise ValueError(
                    f"Reconciler '{name}' cannot handle '{rt}', "
                    f"it belongs to '{existing}'"
                )

        self._reconciler_plugins[name] = plugin_class
        self._reconciler_plugin_info[name] = {
            "name": name,
            "resource_types": resource_types,
        }

        for rt in resource_types:
            self._resource_type_to_reconciler[rt] = name

        logger.info(f"Registered reconciler {name} for {', '.join(resource_types)}")

    def get_reconciler_plugin(self, name: str) -> ReconcilerPlugin:
        """
        Shared instance of a registered reconciler.

        Raises:
            ValueError: If no reconciler has that name.
        """
        if name not in self._reconciler_plugins:
            available = ", ".join(self._reconciler_plugins.keys()) or "none"
            raise ValueError(f"Unknown reconciler plugin: {name} (registered: {available})")

        if name not in self._reconciler_instances:
            self._reconciler_instances[name] = self._reconciler_plugins[name]()
            logger.debug(f"Created reconciler instance {name}")

        return self._reconciler_instances[name]

    def list_reconciler_plugins(self) -> List[str]:
        """Names of the registered reconcilers."""
        return list(self._reconciler_plugins.keys())

    def has_reconciler_for_resource_type(self, resource_type_name: str) -> bool:
        """Whether some reconciler owns the resource type."""
        return resource_type_name in self._resource_type_to_reconciler

    def get_reconciler_for_resource_type(
        self, resource_type_name: str
    ) -> Optional[ReconcilerPlugin]:
        """Instance of the reconciler owning a resource type, or None."""
        reconciler_name = self._resource_type_to_reconciler.get(resource_type_name)
        if reconciler_name is None:
            return None
        return self.get_reconciler_plugin(reconciler_name)

    def get_reconciler_plugin_info(self, name: str) -> Optional[Dict[str, Any]]:
        """Name and resource types of a registered reconciler, or None."""
        return self._reconciler_plugin_info.get(name)


_registry: Optional[PluginRegistry] = None


def get_registry() -> PluginRegistry:
    """Process-wide registry."""
    global _registry
    if _registry is None:
        _registry = PluginRegistry()
    return _registry


def reset_registry() -> None:
    """Forget every registration."""
    global _registry
    _registry = None


def register_builtin_plugins() -> None:
    """Register DmsEndpointReconciler and any reconcilers found as entry points."""
    registry = get_registry()

    from plugins.reconcilers.dms_endpoint import DmsEndpointReconciler

    registry.register_reconciler_plugin(DmsEndpointReconciler)

    for ep in entry_points(group=ENTRY_POINT_GROUP):
        try:
            reconciler_class = ep.load()
            registry.register_reconciler_plugin(reconciler_class)
        except Exception as e:
            logger.warning(f"Could not load reconciler plugin {ep.name}: {e}")
