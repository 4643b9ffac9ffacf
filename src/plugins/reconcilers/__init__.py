"""
Reconciler plugins package.

Reconciler plugins own the reconciliation logic for one or more resource types.
Besides the built-in DMS endpoint reconciler they are discovered via Python
entry points (group: 'dms_operator.reconcilers').
"""

from plugins.reconcilers.base import (
    ReconcilerPlugin,
    ReconcilerContext,
    ReconcileResult,
)

__all__ = ["ReconcilerPlugin", "ReconcilerContext", "ReconcileResult"]
