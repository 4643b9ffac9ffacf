"""
Plugin system for the DMS endpoint operator.

This package provides the reconciler plugin architecture.
"""

from plugins.reconcilers.base import (
    ReconcilerPlugin,
    ReconcilerContext,
    ReconcileResult,
)
from plugins.registry import PluginRegistry, get_registry

__all__ = [
    "ReconcilerPlugin",
    "ReconcilerContext",
    "ReconcileResult",
    "PluginRegistry",
    "get_registry",
]
