"""
Endpoint manifests - declared endpoints loaded from YAML or JSON files.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from validation import validate_endpoint_spec

RESOURCE_TYPE = "DmsEndpoint"


class EndpointManifest(BaseModel):
    """A named endpoint declaration."""

    name: str = Field(..., description="Local resource name", examples=["orders-source"])
    kind: str = Field(default=RESOURCE_TYPE, description="Resource type")
    spec: Dict[str, Any] = Field(..., description="Endpoint declaration")

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v != RESOURCE_TYPE:
            raise ValueError(f"Unsupported kind '{v}', expected '{RESOURCE_TYPE}'")
        return v

    @field_validator("spec")
    @classmethod
    def validate_spec(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        is_valid, error = validate_endpoint_spec(v)
        if not is_valid:
            raise ValueError(error)
        return v

    def to_resource(self, deleting: bool = False) -> Dict[str, Any]:
        """Resource dict as consumed by the reconciler plugin."""
        return {
            "name": self.name,
            "resource_type_name": self.kind,
            "spec": dict(self.spec),
            "deleting": deleting,
        }


def load_manifests(path: Union[str, Path]) -> List[EndpointManifest]:
    """
    Load every manifest from a file.

    YAML files may hold several documents or a list; JSON files hold one
    object or a list.

    Raises:
        pydantic.ValidationError: If any manifest is invalid.
    """
    path = Path(path)
    with open(path, "r") as f:
        if path.suffix in (".yaml", ".yml"):
            documents = [d for d in yaml.safe_load_all(f) if d is not None]
        else:
            documents = [json.load(f)]

    items: List[Any] = []
    for document in documents:
        if isinstance(document, list):
            items.extend(document)
        else:
            items.append(document)

    return [EndpointManifest.model_validate(item) for item in items]
