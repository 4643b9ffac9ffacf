"""
Reconciler Plugin Base - Abstract interface for reconciler plugins.

Reconciler plugins own the reconciliation logic for one or more resource
types. They compare a declared resource against the live state of the
remote system and run their own loop over queued resources.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from models import Endpoint
from state import StateStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileResult:
    """Result from a reconciler's reconcile() call."""

    success: bool = False
    message: str = ""
    requeue_after: Optional[int] = None
    action: str = "none"
    changes: List[str] = field(default_factory=list)
    drift_detected: bool = False


class ReconcilerContext:
    """
    Context provided to reconciler plugins.

    Gives reconcilers access to the local state store, the queue of
    resources waiting for reconciliation and the shutdown signal.
    """

    def __init__(self, store: StateStore, shutdown_event: Optional[asyncio.Event] = None):
        self.store = store
        self.shutdown_event = shutdown_event or asyncio.Event()
        # (due time, resource) pairs
        self._pending: List[Tuple[float, Dict[str, Any]]] = []
        self.history: List[Dict[str, Any]] = []

    def enqueue(self, resource: Dict[str, Any], delay: float = 0) -> None:
        """Queue a resource for the reconciler loop, due after ``delay`` seconds."""
        self._pending.append((time.monotonic() + delay, resource))

    async def get_resources_needing_reconciliation(
        self,
        resource_type_names: List[str],
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        """
        Take queued resources of the given types that are due.

        Args:
            resource_type_names: Resource type names to filter by.
            limit: Maximum number of resources to return.

        Returns:
            List of resource dicts, removed from the queue.
        """
        now = time.monotonic()
        taken = [
            entry
            for entry in self._pending
            if entry[0] <= now
            and entry[1].get("resource_type_name") in resource_type_names
        ][:limit]
        for entry in taken:
            self._pending.remove(entry)
        return [resource for _, resource in taken]

    async def get_state(self, name: str) -> Optional[Endpoint]:
        return self.store.get(name)

    async def save_state(self, name: str, endpoint: Endpoint) -> None:
        self.store.save(name, endpoint)

    async def clear_state(self, name: str) -> bool:
        return self.store.delete(name)

    async def record_reconciliation(
        self,
        name: str,
        result: ReconcileResult,
        duration_seconds: Optional[float] = None,
    ) -> None:
        """
        Record a reconciliation attempt in history.

        Args:
            name: The resource name.
            result: The ReconcileResult from reconciliation.
            duration_seconds: How long reconciliation took.
        """
        self.history.append(
            {
                "name": name,
                "success": result.success,
                "action": result.action,
                "message": result.message,
                "drift_detected": result.drift_detected,
                "duration_seconds": duration_seconds,
            }
        )
        if result.success:
            logger.info(f"Reconciled {name}: {result.action}")
        else:
            logger.error(f"Failed to reconcile {name}: {result.message}")


class ReconcilerPlugin(ABC):
    """
    Abstract base class for reconciler plugins.

    Reconciler plugins own the reconciliation logic for one or more
    resource types. They run their own continuous reconciliation loop,
    reading queued resources from the context and persisting state back.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this reconciler."""
        pass

    @property
    @abstractmethod
    def resource_types(self) -> List[str]:
        """Resource type names this reconciler handles."""
        pass

    @abstractmethod
    async def start(self, ctx: ReconcilerContext) -> None:
        """
        Start the reconciliation loop.

        The reconciler should run its own loop, picking up queued resources
        until ctx.shutdown_event is set.

        Args:
            ctx: ReconcilerContext providing access to resources and state.
        """
        pass

    @abstractmethod
    async def reconcile(
        self, resource: Dict[str, Any], ctx: ReconcilerContext
    ) -> ReconcileResult:
        """
        Reconcile a single resource.

        Compare desired state against actual state and take action.

        Args:
            resource: The resource dict (name, spec, deleting flag).
            ctx: ReconcilerContext for state access.

        Returns:
            ReconcileResult indicating success/failure.
        """
        pass

    @abstractmethod
    async def stop(self) -> None:
        """Graceful shutdown. Clean up any resources."""
        pass
