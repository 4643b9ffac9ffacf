"""Pytest configuration and fixtures."""

import copy
from typing import Any, Dict, List

import pytest

from config import RetryConfig
from engine import ReconciliationEngine
from errors import DmsError, InvalidRequestError, RemoteFault
from plugins.reconcilers.base import ReconcilerContext
from remote import ControlPlane
from state import InMemoryStateStore

ARN_PREFIX = "arn:aws:dms:us-east-1:123456789012:endpoint:"

# Fields DMS never returns in a description
_SECRET_FIELDS = ("Password",)


class FakeControlPlane(ControlPlane):
    """
    In-memory DMS control plane.

    Behaves like the real API where it matters: endpoint types come back
    uppercase, passwords are never returned, lookups of missing endpoints
    raise ResourceNotFoundFault.
    """

    def __init__(self):
        self.endpoints: Dict[str, Dict[str, Any]] = {}
        self.tags: Dict[str, Dict[str, str]] = {}
        self.calls: List[tuple] = []
        # operation name -> list of errors raised before the call succeeds
        self.faults: Dict[str, List[DmsError]] = {}
        self._counter = 0

    def fail(self, operation: str, *faults: DmsError) -> None:
        self.faults.setdefault(operation, []).extend(faults)

    def _record(self, operation: str, *args) -> None:
        self.calls.append((operation,) + args)
        pending = self.faults.get(operation)
        if pending:
            raise pending.pop(0)

    def _find(self, arn: str, operation: str) -> Dict[str, Any]:
        if arn not in self.endpoints:
            raise RemoteFault("ResourceNotFoundFault", f"Endpoint {arn} not found", operation)
        return self.endpoints[arn]

    def call_names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def _validate(self, operation: str, request: Dict[str, Any]) -> None:
        # boto3 rejects null parameters before anything is sent
        for key, value in request.items():
            if value is None:
                raise InvalidRequestError(
                    operation, f"Invalid type for parameter {key}, value: None"
                )

    async def create_endpoint(self, request):
        self._record("create_endpoint", copy.deepcopy(request))
        self._validate("create_endpoint", request)
        for existing in self.endpoints.values():
            if existing["EndpointIdentifier"] == request["EndpointIdentifier"]:
                raise RemoteFault("ResourceAlreadyExistsFault", "exists", "create_endpoint")
        self._counter += 1
        arn = f"{ARN_PREFIX}{self._counter:04d}"
        stored = {k: copy.deepcopy(v) for k, v in request.items() if k != "Tags"}
        stored["EndpointArn"] = arn
        stored["EndpointType"] = request["EndpointType"].upper()
        self.endpoints[arn] = stored
        self.tags[arn] = {t["Key"]: t["Value"] for t in request.get("Tags", [])}
        return self._describe(stored)

    def _describe(self, stored):
        return {k: copy.deepcopy(v) for k, v in stored.items() if k not in _SECRET_FIELDS}

    async def describe_endpoints(self, filters):
        self._record("describe_endpoints", copy.deepcopy(filters))
        wanted = set(filters[0]["Values"])
        matches = [
            self._describe(e)
            for e in self.endpoints.values()
            if e["EndpointIdentifier"] in wanted
        ]
        if not matches:
            raise RemoteFault("ResourceNotFoundFault", "No endpoints found", "describe_endpoints")
        return matches

    async def modify_endpoint(self, request):
        self._record("modify_endpoint", copy.deepcopy(request))
        self._validate("modify_endpoint", request)
        stored = self._find(request["EndpointArn"], "modify_endpoint")
        for key, value in request.items():
            if key == "EndpointType":
                value = value.upper()
            stored[key] = copy.deepcopy(value)
        return self._describe(stored)

    async def delete_endpoint(self, endpoint_arn):
        self._record("delete_endpoint", endpoint_arn)
        self._find(endpoint_arn, "delete_endpoint")
        del self.endpoints[endpoint_arn]
        del self.tags[endpoint_arn]

    async def list_tags_for_resource(self, resource_arn):
        self._record("list_tags_for_resource", resource_arn)
        self._find(resource_arn, "list_tags_for_resource")
        return [{"Key": k, "Value": v} for k, v in self.tags[resource_arn].items()]

    async def add_tags_to_resource(self, resource_arn, tags):
        self._record("add_tags_to_resource", resource_arn, copy.deepcopy(tags))
        self._find(resource_arn, "add_tags_to_resource")
        for tag in tags:
            self.tags[resource_arn][tag["Key"]] = tag["Value"]

    async def remove_tags_from_resource(self, resource_arn, tag_keys):
        self._record("remove_tags_from_resource", resource_arn, list(tag_keys))
        self._find(resource_arn, "remove_tags_from_resource")
        for key in tag_keys:
            self.tags[resource_arn].pop(key, None)


@pytest.fixture
def control_plane():
    return FakeControlPlane()


@pytest.fixture
def fast_retry():
    """Retry policy with a short ceiling for tests."""
    return RetryConfig(create_timeout=0.5, base_delay=0.01, max_delay=0.02, jitter_factor=0.0)


@pytest.fixture
def engine(control_plane, fast_retry):
    return ReconciliationEngine(control_plane, retry_config=fast_retry)


@pytest.fixture
def reconciler_ctx():
    return ReconcilerContext(store=InMemoryStateStore())


@pytest.fixture
def mysql_spec():
    """Declaration of a relational source endpoint."""
    return {
        "identifier": "orders-source",
        "role": "source",
        "engine_kind": "mysql",
        "host": "db.example.com",
        "port": 3306,
        "username": "dms",
        "password": "s3cret",
        "database_name": "orders",
        "extra_attributes": "initstmt=SET FOREIGN_KEY_CHECKS=0",
        "ssl_mode": "require",
        "tags": {"team": "data"},
    }


@pytest.fixture
def s3_spec():
    """Declaration of an S3 target endpoint."""
    return {
        "identifier": "orders-archive",
        "role": "target",
        "engine_kind": "s3",
        "access_role_reference": "arn:aws:iam::123456789012:role/dms-s3",
        "bucket_name": "orders-bucket",
        "bucket_folder": "raw",
        "extra_attributes": "compressionType=GZIP;csvDelimiter=,;csvRowDelimiter=\\n",
        "tags": {"team": "data"},
    }


@pytest.fixture
def dynamodb_spec():
    return {
        "identifier": "ep1",
        "role": "target",
        "engine_kind": "dynamodb",
        "access_role_reference": "role-a",
    }
