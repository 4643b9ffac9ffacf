"""
Settings variant resolution.

Maps between the flat declaration form of an endpoint, the tagged settings
variants, and the field layout the DMS API uses for each variant.
"""

from typing import Any, Dict, Optional

from extra_attributes import format_extra_attributes, parse_extra_attributes
from models import (
    DynamoSettings,
    Endpoint,
    EndpointRole,
    EndpointSettings,
    EngineKind,
    RelationalSettings,
    S3Settings,
    SettingsCategory,
    SslMode,
)

# Flat attribute name -> DMS API field, for the relational variant
RELATIONAL_FIELDS = (
    ("host", "ServerName"),
    ("port", "Port"),
    ("username", "Username"),
    ("password", "Password"),
    ("database_name", "DatabaseName"),
    ("extra_attributes", "ExtraConnectionAttributes"),
    ("encryption_key_reference", "KmsKeyId"),
    ("ssl_mode", "SslMode"),
)


def resolve_settings(
    engine_kind: EngineKind, attributes: Dict[str, Any]
) -> EndpointSettings:
    """
    Build the settings variant for an engine kind from flat attributes.

    Attributes belonging to other variants are ignored. The engine kind is
    assumed to be valid.

    Args:
        engine_kind: The endpoint's engine.
        attributes: Flat declaration attributes.

    Returns:
        The single settings variant matching the engine kind's category.
    """
    category = engine_kind.category

    if category is SettingsCategory.DYNAMODB:
        return DynamoSettings(
            access_role_reference=attributes.get("access_role_reference") or ""
        )

    if category is SettingsCategory.S3:
        extra = parse_extra_attributes(attributes.get("extra_attributes"))
        return S3Settings(
            access_role_reference=attributes.get("access_role_reference") or "",
            bucket_name=attributes.get("bucket_name") or "",
            bucket_folder=attributes.get("bucket_folder") or "",
            compression_type=extra.compression_type,
            csv_delimiter=extra.csv_delimiter,
            csv_row_delimiter=extra.csv_row_delimiter,
        )

    port = attributes.get("port")
    ssl_mode = attributes.get("ssl_mode")
    return RelationalSettings(
        host=attributes.get("host"),
        port=int(port) if port is not None else None,
        username=attributes.get("username"),
        password=attributes.get("password"),
        database_name=attributes.get("database_name"),
        extra_attributes=attributes.get("extra_attributes"),
        encryption_key_reference=attributes.get("encryption_key_reference"),
        ssl_mode=SslMode(ssl_mode) if ssl_mode else None,
    )


def dynamo_settings_payload(settings: DynamoSettings) -> Dict[str, Any]:
    return {"ServiceAccessRoleArn": settings.access_role_reference}


def s3_settings_payload(settings: S3Settings) -> Dict[str, Any]:
    """The complete S3Settings sub-object. DMS never accepts a partial one."""
    return {
        "ServiceAccessRoleArn": settings.access_role_reference,
        "BucketName": settings.bucket_name,
        "BucketFolder": settings.bucket_folder,
        "CompressionType": settings.compression_type,
        "CsvDelimiter": settings.csv_delimiter,
        "CsvRowDelimiter": settings.csv_row_delimiter,
    }


def relational_field_value(settings: RelationalSettings, attr: str) -> Any:
    value = getattr(settings, attr)
    if isinstance(value, SslMode):
        return value.value
    return value


def settings_request_fields(settings: EndpointSettings) -> Dict[str, Any]:
    """
    Remote request fields for a settings variant.

    DynamoDB and S3 settings go in their own sub-object; relational settings
    are top-level fields, with unset optional fields left out.
    """
    if isinstance(settings, DynamoSettings):
        return {"DynamoDbSettings": dynamo_settings_payload(settings)}
    if isinstance(settings, S3Settings):
        return {"S3Settings": s3_settings_payload(settings)}

    fields = {}
    for attr, api_field in RELATIONAL_FIELDS:
        value = relational_field_value(settings, attr)
        if value is not None and value != "":
            fields[api_field] = value
    return fields


def settings_from_remote(
    engine_kind: EngineKind, remote: Dict[str, Any]
) -> EndpointSettings:
    """
    Rebuild the settings variant from a described endpoint.

    The variant is chosen by the engine kind's category, never by which
    payload fields happen to be present. Secrets are not returned by the
    control plane, so the password is always None.
    """
    category = engine_kind.category

    if category is SettingsCategory.DYNAMODB:
        dynamo = remote.get("DynamoDbSettings") or {}
        return DynamoSettings(
            access_role_reference=dynamo.get("ServiceAccessRoleArn") or ""
        )

    if category is SettingsCategory.S3:
        s3 = remote.get("S3Settings")
        if not s3:
            return S3Settings()
        # Round-trip through the codec so missing values take their defaults
        extra = parse_extra_attributes(
            format_extra_attributes(
                s3.get("CompressionType"),
                s3.get("CsvDelimiter"),
                s3.get("CsvRowDelimiter"),
            )
        )
        return S3Settings(
            access_role_reference=s3.get("ServiceAccessRoleArn") or "",
            bucket_name=s3.get("BucketName") or "",
            bucket_folder=s3.get("BucketFolder") or "",
            compression_type=extra.compression_type,
            csv_delimiter=extra.csv_delimiter,
            csv_row_delimiter=extra.csv_row_delimiter,
        )

    ssl_mode = remote.get("SslMode")
    return RelationalSettings(
        host=remote.get("ServerName"),
        port=remote.get("Port"),
        username=remote.get("Username"),
        database_name=remote.get("DatabaseName"),
        extra_attributes=remote.get("ExtraConnectionAttributes"),
        encryption_key_reference=remote.get("KmsKeyId"),
        ssl_mode=SslMode(ssl_mode) if ssl_mode else None,
    )


def flatten_settings(settings: EndpointSettings) -> Dict[str, Any]:
    """Flat declaration attributes for a settings variant."""
    if isinstance(settings, DynamoSettings):
        return {"access_role_reference": settings.access_role_reference}
    if isinstance(settings, S3Settings):
        return {
            "access_role_reference": settings.access_role_reference,
            "bucket_name": settings.bucket_name,
            "bucket_folder": settings.bucket_folder,
            "extra_attributes": format_extra_attributes(
                settings.compression_type,
                settings.csv_delimiter,
                settings.csv_row_delimiter,
            ),
        }
    return {
        attr: relational_field_value(settings, attr)
        for attr, _ in RELATIONAL_FIELDS
        if getattr(settings, attr) is not None
    }


def endpoint_from_declaration(spec: Dict[str, Any]) -> Endpoint:
    """Build an Endpoint from its flat declaration form."""
    engine_kind = EngineKind(spec["engine_kind"])
    return Endpoint(
        identifier=spec["identifier"],
        role=EndpointRole(spec["role"].lower()),
        engine_kind=engine_kind,
        settings=resolve_settings(engine_kind, spec),
        certificate_reference=spec.get("certificate_reference"),
        tags=dict(spec.get("tags") or {}),
        remote_reference=spec.get("remote_reference"),
    )


def endpoint_to_declaration(endpoint: Endpoint) -> Dict[str, Any]:
    """Flatten an Endpoint into its declaration form."""
    declaration: Dict[str, Any] = {
        "identifier": endpoint.identifier,
        "role": endpoint.role.value,
        "engine_kind": endpoint.engine_kind.value,
    }
    declaration.update(flatten_settings(endpoint.settings))
    if endpoint.certificate_reference:
        declaration["certificate_reference"] = endpoint.certificate_reference
    declaration["tags"] = dict(endpoint.tags)
    if endpoint.remote_reference:
        declaration["remote_reference"] = endpoint.remote_reference
    return declaration


def describe_settings(settings: EndpointSettings) -> Optional[str]:
    """Short human-readable summary of where an endpoint points."""
    if isinstance(settings, DynamoSettings):
        return settings.access_role_reference or None
    if isinstance(settings, S3Settings):
        return f"s3://{settings.bucket_name}/{settings.bucket_folder}".rstrip("/")
    if settings.host:
        return f"{settings.host}:{settings.port}" if settings.port else settings.host
    return None
