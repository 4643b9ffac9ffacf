"""
Remote control plane - the DMS API capability set.

The reconciliation engine only talks to the ControlPlane interface, so any
implementation of these calls is substitutable. Boto3ControlPlane is the
production implementation over the boto3 ``dms`` client.
"""

import asyncio
import functools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError, ParamValidationError

from errors import InvalidRequestError, RemoteFault

logger = logging.getLogger(__name__)


class ControlPlane(ABC):
    """
    Abstract DMS control plane.

    Requests and responses use the DMS API field names (``EndpointArn``,
    ``S3Settings`` and so on). Failures are raised as RemoteFault, or as
    InvalidRequestError when the request is malformed.
    """

    @abstractmethod
    async def create_endpoint(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Create an endpoint and return its description."""
        pass

    @abstractmethod
    async def describe_endpoints(
        self, filters: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        """Return endpoint descriptions matching the filters."""
        pass

    @abstractmethod
    async def modify_endpoint(self, request: Dict[str, Any]) -> Dict[str, Any]:
        """Apply a partial update. ``request`` must include ``EndpointArn``."""
        pass

    @abstractmethod
    async def delete_endpoint(self, endpoint_arn: str) -> None:
        pass

    @abstractmethod
    async def list_tags_for_resource(self, resource_arn: str) -> List[Dict[str, str]]:
        """Return the resource's tags as ``{"Key": ..., "Value": ...}`` items."""
        pass

    @abstractmethod
    async def add_tags_to_resource(
        self, resource_arn: str, tags: List[Dict[str, str]]
    ) -> None:
        pass

    @abstractmethod
    async def remove_tags_from_resource(
        self, resource_arn: str, tag_keys: List[str]
    ) -> None:
        pass


class Boto3ControlPlane(ControlPlane):
    """ControlPlane backed by a boto3 DMS client."""

    def __init__(
        self,
        client: Any = None,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        profile: Optional[str] = None,
    ):
        if client is None:
            session = boto3.Session(profile_name=profile, region_name=region)
            client = session.client(
                "dms",
                region_name=region,
                endpoint_url=endpoint_url,
                # Retries beyond the SDK's own are handled by the engine
                config=BotoConfig(retries={"max_attempts": 3, "mode": "standard"}),
            )
        self._client = client

    @classmethod
    def from_config(cls, aws_config) -> "Boto3ControlPlane":
        return cls(
            region=aws_config.region,
            endpoint_url=aws_config.endpoint_url,
            profile=aws_config.profile,
        )

    async def _call(self, operation: str, **kwargs) -> Dict[str, Any]:
        """Run a blocking client call in the default executor."""
        method = getattr(self._client, operation)
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(method, **kwargs))
        except ClientError as e:
            error = e.response.get("Error", {})
            raise RemoteFault(
                code=error.get("Code", "Unknown"),
                message=error.get("Message", ""),
                operation=operation,
            ) from e
        except ParamValidationError as e:
            raise InvalidRequestError(operation, str(e)) from e

    async def create_endpoint(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._call("create_endpoint", **request)
        return response["Endpoint"]

    async def describe_endpoints(
        self, filters: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        response = await self._call("describe_endpoints", Filters=filters)
        return response.get("Endpoints", [])

    async def modify_endpoint(self, request: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._call("modify_endpoint", **request)
        return response["Endpoint"]

    async def delete_endpoint(self, endpoint_arn: str) -> None:
        await self._call("delete_endpoint", EndpointArn=endpoint_arn)

    async def list_tags_for_resource(self, resource_arn: str) -> List[Dict[str, str]]:
        response = await self._call("list_tags_for_resource", ResourceArn=resource_arn)
        return response.get("TagList", [])

    async def add_tags_to_resource(
        self, resource_arn: str, tags: List[Dict[str, str]]
    ) -> None:
        await self._call("add_tags_to_resource", ResourceArn=resource_arn, Tags=tags)

    async def remove_tags_from_resource(
        self, resource_arn: str, tag_keys: List[str]
    ) -> None:
        await self._call(
            "remove_tags_from_resource", ResourceArn=resource_arn, TagKeys=tag_keys
        )
