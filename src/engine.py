"""
Reconciliation Engine - create, read, update and delete DMS endpoints.

The engine is the only component that talks to the control plane. It builds
variant-typed requests from Endpoint values, rebuilds Endpoints from remote
descriptions, computes minimal partial updates and applies the create retry
policy.
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from config import RetryConfig
from errors import DmsError, RemoteFault, RetryTimeoutError
from models import (
    DynamoSettings,
    Endpoint,
    EndpointRole,
    EngineKind,
    S3Settings,
)
from remote import ControlPlane
from settings import (
    RELATIONAL_FIELDS,
    dynamo_settings_payload,
    relational_field_value,
    s3_settings_payload,
    settings_from_remote,
    settings_request_fields,
)
from tags import TagSynchronizer, tags_to_list

logger = logging.getLogger(__name__)

IDENTIFIER_FILTER = "endpoint-id"

# Attributes the control plane fills in when they are not declared. A
# declaration that leaves them unset does not manage them. Only checked for
# common and relational fields; s3 extra_attributes always goes through the
# codec and is resent in full.
COMPUTED_ATTRIBUTES = frozenset(
    {"certificate_reference", "extra_attributes", "encryption_key_reference", "ssl_mode"}
)

# Relational attributes ModifyEndpoint accepts. The encryption key can only
# be set at creation.
MODIFIABLE_RELATIONAL_FIELDS = tuple(
    (attr, api_field)
    for attr, api_field in RELATIONAL_FIELDS
    if attr != "encryption_key_reference"
)

COMMON_FIELDS = (
    ("role", "EndpointType", lambda e: e.role.value),
    ("certificate_reference", "CertificateArn", lambda e: e.certificate_reference),
    ("engine_kind", "EngineName", lambda e: e.engine_kind.value),
)


@dataclass
class UpdatePlan:
    """Outgoing partial update, computed before anything is sent."""

    modify_fields: Dict[str, Any] = field(default_factory=dict)
    changed: List[str] = field(default_factory=list)
    tags_changed: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.modify_fields) or self.tags_changed


def redact(request: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of a request safe to log."""
    if "Password" in request:
        return {**request, "Password": "********"}
    return request


def build_create_request(endpoint: Endpoint) -> Dict[str, Any]:
    """CreateEndpoint request for an endpoint: common fields plus its variant."""
    request: Dict[str, Any] = {
        "EndpointIdentifier": endpoint.identifier,
        "EndpointType": endpoint.role.value,
        "EngineName": endpoint.engine_kind.value,
        "Tags": tags_to_list(endpoint.tags),
    }
    request.update(settings_request_fields(endpoint.settings))
    if endpoint.certificate_reference:
        request["CertificateArn"] = endpoint.certificate_reference
    return request


def endpoint_from_remote(remote: Dict[str, Any]) -> Endpoint:
    """
    Rebuild an Endpoint from a DescribeEndpoints entry.

    DMS accepts the endpoint type in lowercase but reports it in uppercase,
    so it is normalized here. Tags are not part of the description.
    """
    engine_kind = EngineKind(remote["EngineName"])
    return Endpoint(
        identifier=remote["EndpointIdentifier"],
        role=EndpointRole(remote["EndpointType"].lower()),
        engine_kind=engine_kind,
        settings=settings_from_remote(engine_kind, remote),
        certificate_reference=remote.get("CertificateArn"),
        remote_reference=remote.get("EndpointArn"),
    )


def _declared(attr: str, value: Any) -> bool:
    return value is not None or attr not in COMPUTED_ATTRIBUTES


def _cleared(value: Any) -> Any:
    """Treat an empty string and an unset value as the same thing."""
    return None if value == "" else value


class ReconciliationEngine:
    """
    Orchestrates endpoint operations against the control plane.

    Every operation awaits the remote response before returning. Operations
    on the same endpoint must be serialized by the caller.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        retry_config: Optional[RetryConfig] = None,
        tag_synchronizer: Optional[TagSynchronizer] = None,
    ):
        self.control_plane = control_plane
        self.retry = retry_config or RetryConfig()
        self.tags = tag_synchronizer or TagSynchronizer(control_plane)

    async def create(self, endpoint: Endpoint) -> Endpoint:
        """
        Create the endpoint, then read it back.

        CreateEndpoint is retried on access denial until the configured
        ceiling; any other fault aborts immediately.

        Args:
            endpoint: Fully declared endpoint without a remote reference.

        Returns:
            The endpoint as read back, carrying the declared password.

        Raises:
            ValueError: If the endpoint already has a remote reference.
            RemoteFault: On a non-retryable control plane error.
            RetryTimeoutError: If access denial persists past the ceiling.
        """
        if endpoint.remote_reference:
            raise ValueError(
                f"Endpoint {endpoint.identifier} already exists "
                f"({endpoint.remote_reference})"
            )

        request = build_create_request(endpoint)
        logger.debug(f"DMS create endpoint: {redact(request)}")

        created = await self._retry_transient_auth(
            "CreateEndpoint", lambda: self.control_plane.create_endpoint(request)
        )
        logger.info(
            f"Created DMS endpoint {endpoint.identifier} "
            f"({created.get('EndpointArn')})"
        )

        refreshed = await self.read(endpoint.identifier)
        if refreshed is None:
            raise DmsError(
                f"Endpoint {endpoint.identifier} was created but could not be read back"
            )
        return refreshed.with_secrets_from(endpoint)

    async def read(self, identifier: str) -> Optional[Endpoint]:
        """
        Read an endpoint by its identifier.

        Keyed by identifier rather than ARN so an existing endpoint can be
        imported without knowing its remote reference.

        Returns:
            The endpoint with its tags, or None if it does not exist.

        Raises:
            RemoteFault: On any error other than not-found, including a
                failure to list the endpoint's tags.
        """
        try:
            matches = await self.control_plane.describe_endpoints(
                [{"Name": IDENTIFIER_FILTER, "Values": [identifier]}]
            )
        except RemoteFault as e:
            if e.is_not_found:
                logger.debug(f"DMS endpoint {identifier!r} not found")
                return None
            raise

        if not matches:
            logger.debug(f"DMS endpoint {identifier!r} not found")
            return None
        if len(matches) > 1:
            logger.warning(
                f"{len(matches)} DMS endpoints match {identifier!r}, using the first"
            )

        endpoint = endpoint_from_remote(matches[0])
        endpoint.tags = await self.tags.fetch(endpoint.remote_reference)
        return endpoint

    def plan_update(self, previous: Endpoint, desired: Endpoint) -> UpdatePlan:
        """
        Compute the partial update taking ``previous`` to ``desired``.

        Common and relational fields are sent individually when they
        change. DynamoDB and S3 settings are only accepted as a whole
        sub-object, so any change inside them resends all of it.
        """
        plan = UpdatePlan()

        for attr, api_field, getter in COMMON_FIELDS:
            new = getter(desired)
            if _declared(attr, new) and getter(previous) != new:
                plan.modify_fields[api_field] = new
                plan.changed.append(attr)

        settings = desired.settings
        if isinstance(settings, DynamoSettings):
            if previous.settings != settings:
                plan.modify_fields["DynamoDbSettings"] = dynamo_settings_payload(
                    settings
                )
                plan.changed.append("settings")
        elif isinstance(settings, S3Settings):
            if previous.settings != settings:
                plan.modify_fields["S3Settings"] = s3_settings_payload(settings)
                plan.changed.append("settings")
        else:
            for attr, api_field in MODIFIABLE_RELATIONAL_FIELDS:
                new = relational_field_value(settings, attr)
                old = getattr(previous.settings, attr, None)
                old = getattr(old, "value", old)
                if not _declared(attr, new) or _cleared(old) == _cleared(new):
                    continue
                if new is None and attr == "port":
                    continue
                plan.modify_fields[api_field] = "" if new is None else new
                plan.changed.append(attr)

        if previous.tags != desired.tags:
            plan.tags_changed = True
            plan.changed.append("tags")

        return plan

    def replacement_reasons(self, previous: Endpoint, desired: Endpoint) -> List[str]:
        """Attributes whose change cannot be applied in place."""
        reasons = []
        if previous.identifier != desired.identifier:
            reasons.append("identifier")
        new_key = getattr(desired.settings, "encryption_key_reference", None)
        old_key = getattr(previous.settings, "encryption_key_reference", None)
        if new_key is not None and new_key != old_key:
            reasons.append("encryption_key_reference")
        return reasons

    async def update(self, previous: Endpoint, desired: Endpoint) -> Endpoint:
        """
        Apply the difference between two states of an endpoint.

        Tags are synchronized separately from the ModifyEndpoint call. When
        nothing changed no remote call is made.

        Returns:
            The refreshed endpoint, or ``previous`` (with desired tags) when
            no ModifyEndpoint call was needed.
        """
        arn = previous.remote_reference
        if not arn:
            raise ValueError(f"Endpoint {previous.identifier} has no remote reference")

        plan = self.plan_update(previous, desired)
        if not plan.has_changes:
            logger.debug(f"No changes for DMS endpoint {previous.identifier}")
            return previous

        if plan.tags_changed:
            await self.tags.sync(arn, previous.tags, desired.tags)

        if not plan.modify_fields:
            return replace(previous, tags=dict(desired.tags))

        request = {"EndpointArn": arn, **plan.modify_fields}
        logger.debug(f"DMS update endpoint: {redact(request)}")
        await self.control_plane.modify_endpoint(request)
        logger.info(
            f"Updated DMS endpoint {desired.identifier}: {', '.join(plan.changed)}"
        )

        refreshed = await self.read(desired.identifier)
        if refreshed is None:
            raise DmsError(
                f"Endpoint {desired.identifier} disappeared during update"
            )
        return refreshed.with_secrets_from(desired)

    async def delete(self, remote_reference: str) -> None:
        """Delete an endpoint. Attempted exactly once."""
        logger.debug(f"DMS delete endpoint: {remote_reference}")
        await self.control_plane.delete_endpoint(remote_reference)
        logger.info(f"Deleted DMS endpoint {remote_reference}")

    def _backoff_delay(self, attempt: int) -> float:
        delay = min(self.retry.base_delay * (2 ** (attempt - 1)), self.retry.max_delay)
        jitter = delay * self.retry.jitter_factor
        return max(0.0, delay + random.uniform(-jitter, jitter))

    async def _retry_transient_auth(
        self, operation: str, call: Callable[[], Awaitable[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        """Retry ``call`` on access denial until the create timeout elapses."""
        deadline = time.monotonic() + self.retry.create_timeout
        attempt = 0

        while True:
            try:
                return await call()
            except RemoteFault as e:
                if not e.is_transient_auth:
                    raise
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise RetryTimeoutError(
                        operation, self.retry.create_timeout, e
                    ) from e
                attempt += 1
                delay = min(self._backoff_delay(attempt), remaining)
                logger.warning(
                    f"{operation} denied ({e.code}), retrying in {delay:.1f}s "
                    f"(attempt {attempt})"
                )
                await asyncio.sleep(delay)
