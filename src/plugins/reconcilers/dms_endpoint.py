"""
DMS Endpoint Reconciler - drives the reconciliation engine for declared endpoints.

For each resource the live endpoint is read by identifier and compared with
the declaration: missing endpoints are created, changed ones updated in place
or replaced, and deleted resources destroyed.
"""

import asyncio
import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional

from config import get_config
from engine import ReconciliationEngine
from errors import DmsError, EndpointValidationError
from manifest import RESOURCE_TYPE
from models import Endpoint
from plugins.reconcilers.base import (
    ReconcilerContext,
    ReconcilerPlugin,
    ReconcileResult,
)
from remote import Boto3ControlPlane
from settings import endpoint_from_declaration
from validation import validate_endpoint_spec

logger = logging.getLogger(__name__)


class DmsEndpointReconciler(ReconcilerPlugin):
    """Reconciler plugin for the DmsEndpoint resource type."""

    def __init__(
        self,
        engine: Optional[ReconciliationEngine] = None,
        reconcile_interval: Optional[int] = None,
    ):
        self._engine = engine
        self._reconcile_interval = reconcile_interval
        self._running = False

    @property
    def name(self) -> str:
        return "dms_endpoint"

    @property
    def resource_types(self) -> List[str]:
        return [RESOURCE_TYPE]

    @property
    def engine(self) -> ReconciliationEngine:
        if self._engine is None:
            config = get_config()
            self._engine = ReconciliationEngine(
                Boto3ControlPlane.from_config(config.aws),
                retry_config=config.retry,
            )
        return self._engine

    @property
    def reconcile_interval(self) -> int:
        if self._reconcile_interval is None:
            self._reconcile_interval = get_config().controller.reconcile_interval
        return self._reconcile_interval

    async def start(self, ctx: ReconcilerContext) -> None:
        """Reconcile queued resources until shutdown."""
        self._running = True
        logger.info(f"Starting reconciler {self.name}")

        while self._running and not ctx.shutdown_event.is_set():
            resources = await ctx.get_resources_needing_reconciliation(
                self.resource_types
            )
            for resource in resources:
                start_time = time.monotonic()
                result = await self.reconcile(resource, ctx)
                await ctx.record_reconciliation(
                    resource["name"], result, time.monotonic() - start_time
                )
                if result.requeue_after is not None:
                    ctx.enqueue(resource, delay=result.requeue_after)

            try:
                await asyncio.wait_for(
                    ctx.shutdown_event.wait(), timeout=self.reconcile_interval
                )
            except asyncio.TimeoutError:
                pass

    async def stop(self) -> None:
        logger.info(f"Stopping reconciler {self.name}")
        self._running = False

    async def reconcile(
        self, resource: Dict[str, Any], ctx: ReconcilerContext
    ) -> ReconcileResult:
        """
        Bring one declared endpoint in line with the control plane.

        Args:
            resource: Dict with ``name``, ``spec`` and optional ``deleting``.
            ctx: ReconcilerContext holding the persisted state.

        Returns:
            ReconcileResult whose ``action`` is one of created, updated,
            replaced, deleted, none or failed. Everything but a completed
            delete asks to be requeued after the reconcile interval.
        """
        result = await self._reconcile(resource, ctx)
        if not (resource.get("deleting") and result.success):
            result.requeue_after = self.reconcile_interval
        return result

    async def _reconcile(
        self, resource: Dict[str, Any], ctx: ReconcilerContext
    ) -> ReconcileResult:
        name = resource["name"]

        try:
            if resource.get("deleting"):
                return await self._destroy(name, ctx)

            desired = self._desired(resource)
            stored = await ctx.get_state(name)
            current = await self._refresh(desired, stored)

            if current is None:
                created = await self.engine.create(desired)
                await ctx.save_state(name, created)
                return ReconcileResult(
                    success=True,
                    message=f"Created endpoint {created.identifier}",
                    action="created",
                    drift_detected=stored is not None,
                )

            drift_detected = stored is not None and stored != current
            if drift_detected:
                logger.info(f"Drift detected for {name}: live state differs from state")

            reasons = self.engine.replacement_reasons(current, desired)
            if reasons:
                logger.info(f"Replacing {name}: {', '.join(reasons)} changed")
                await self.engine.delete(current.remote_reference)
                created = await self.engine.create(desired)
                await ctx.save_state(name, created)
                return ReconcileResult(
                    success=True,
                    message=f"Replaced endpoint {created.identifier}",
                    action="replaced",
                    changes=reasons,
                    drift_detected=drift_detected,
                )

            plan = self.engine.plan_update(current, desired)
            if not plan.has_changes:
                await ctx.save_state(name, current)
                return ReconcileResult(
                    success=True,
                    message="Endpoint is up to date",
                    drift_detected=drift_detected,
                )

            updated = await self.engine.update(current, desired)
            await ctx.save_state(name, updated)
            return ReconcileResult(
                success=True,
                message=f"Updated {', '.join(plan.changed)}",
                action="updated",
                changes=plan.changed,
                drift_detected=drift_detected,
            )

        except (DmsError, ValueError) as e:
            logger.error(f"Error reconciling {name}: {e}")
            return ReconcileResult(success=False, message=str(e), action="failed")

    async def plan(
        self, resource: Dict[str, Any], ctx: ReconcilerContext
    ) -> ReconcileResult:
        """Report what reconcile() would do without changing anything."""
        name = resource["name"]
        try:
            if resource.get("deleting"):
                stored = await ctx.get_state(name)
                return ReconcileResult(
                    success=True,
                    action="delete" if stored else "none",
                    message=f"Would delete {stored.identifier}" if stored else "",
                )

            desired = self._desired(resource)
            stored = await ctx.get_state(name)
            current = await self._refresh(desired, stored)

            if current is None:
                return ReconcileResult(
                    success=True,
                    action="create",
                    message=f"Would create {desired.identifier}",
                )

            reasons = self.engine.replacement_reasons(current, desired)
            if reasons:
                return ReconcileResult(
                    success=True,
                    action="replace",
                    changes=reasons,
                    message=f"Would replace {current.identifier}",
                )

            update = self.engine.plan_update(current, desired)
            return ReconcileResult(
                success=True,
                action="update" if update.has_changes else "none",
                changes=update.changed,
                drift_detected=stored is not None and stored != current,
            )

        except (DmsError, ValueError) as e:
            return ReconcileResult(success=False, message=str(e), action="failed")

    async def import_endpoint(
        self, name: str, identifier: str, ctx: ReconcilerContext
    ) -> Optional[Endpoint]:
        """
        Adopt an existing endpoint into local state.

        Returns:
            The imported endpoint, or None if no endpoint has that identifier.
        """
        endpoint = await self.engine.read(identifier)
        if endpoint is None:
            logger.warning(f"No DMS endpoint with identifier {identifier!r}")
            return None
        await ctx.save_state(name, endpoint)
        logger.info(f"Imported {identifier} as {name}")
        return endpoint

    def _desired(self, resource: Dict[str, Any]) -> Endpoint:
        spec = resource.get("spec") or {}
        is_valid, error = validate_endpoint_spec(spec)
        if not is_valid:
            raise EndpointValidationError(f"Invalid endpoint spec: {error}")
        return replace(endpoint_from_declaration(spec), remote_reference=None)

    async def _refresh(
        self, desired: Endpoint, stored: Optional[Endpoint]
    ) -> Optional[Endpoint]:
        """Read the live endpoint, restoring the stored password."""
        identifier = stored.identifier if stored else desired.identifier
        current = await self.engine.read(identifier)
        if current is None:
            if stored is not None:
                logger.info(f"Endpoint {identifier} no longer exists remotely")
            return None
        return current.with_secrets_from(stored)

    async def _destroy(self, name: str, ctx: ReconcilerContext) -> ReconcileResult:
        stored = await ctx.get_state(name)
        if stored is None or not stored.remote_reference:
            await ctx.clear_state(name)
            return ReconcileResult(success=True, message="Nothing to delete")

        await self.engine.delete(stored.remote_reference)
        await ctx.clear_state(name)
        return ReconcileResult(
            success=True,
            message=f"Deleted endpoint {stored.identifier}",
            action="deleted",
        )
