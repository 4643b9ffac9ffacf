"""
Declaration Validation - JSON Schema validation of endpoint declarations.

Declarations are checked before any remote call so that invalid engine
kinds, identifiers or conflicting settings never reach the control plane.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

from models import EndpointRole, EngineKind, SslMode

logger = logging.getLogger(__name__)

# Starts with a letter; letters, digits and single hyphens; no trailing hyphen
IDENTIFIER_PATTERN = r"^[A-Za-z](?:[0-9A-Za-z]|-(?!-))*(?<!-)$"
ARN_PATTERN = r"^arn:[^:]+:[^:]+:[^:]*:[^:]*:.+$"

ENDPOINT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["identifier", "role", "engine_kind"],
    "properties": {
        "identifier": {
            "type": "string",
            "minLength": 1,
            "maxLength": 255,
            "pattern": IDENTIFIER_PATTERN,
        },
        "role": {"type": "string", "enum": [r.value for r in EndpointRole]},
        "engine_kind": {"type": "string", "enum": [k.value for k in EngineKind]},
        "certificate_reference": {"type": "string", "pattern": ARN_PATTERN},
        "tags": {
            "type": "object",
            "additionalProperties": {"type": "string"},
        },
        "remote_reference": {"type": "string"},
        "host": {"type": "string"},
        "port": {"type": "integer", "minimum": 1, "maximum": 65535},
        "username": {"type": "string"},
        "password": {"type": "string"},
        "database_name": {"type": "string"},
        "extra_attributes": {"type": "string"},
        "encryption_key_reference": {"type": "string", "pattern": ARN_PATTERN},
        "ssl_mode": {"type": "string", "enum": [m.value for m in SslMode]},
        "access_role_reference": {"type": "string"},
        "bucket_name": {"type": "string"},
        "bucket_folder": {"type": "string"},
    },
    "additionalProperties": False,
    "allOf": [
        {
            "if": {"properties": {"engine_kind": {"const": "dynamodb"}}},
            "then": {"required": ["access_role_reference"]},
        },
        {
            "if": {"properties": {"engine_kind": {"const": "s3"}}},
            "then": {"required": ["access_role_reference", "bucket_name"]},
        },
        {
            "if": {"required": ["encryption_key_reference"]},
            "then": {
                "not": {
                    "anyOf": [
                        {"required": ["bucket_name"]},
                        {"required": ["bucket_folder"]},
                    ]
                }
            },
        },
    ],
}


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a declaration against a JSON Schema.

    Args:
        spec: The declaration to validate
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
        errors = sorted(validator.iter_errors(spec), key=lambda e: list(e.absolute_path))

        if not errors:
            return True, None

        # Collect all validation errors
        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"


def validate_endpoint_spec(spec: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """Validate an endpoint declaration."""
    is_valid, error = validate_spec_against_schema(spec, ENDPOINT_SCHEMA)
    if not is_valid:
        logger.debug(f"Invalid endpoint declaration: {error}")
    return is_valid, error
