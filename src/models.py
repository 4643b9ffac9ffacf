"""
Endpoint domain types.

The settings of an endpoint are a tagged union: exactly one of
RelationalSettings, DynamoSettings or S3Settings, chosen by the category
of the endpoint's engine kind.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Union

DEFAULT_COMPRESSION_TYPE = "GZIP"
DEFAULT_CSV_DELIMITER = ","
# Sent as the two-character escape, which is what DMS expects
DEFAULT_CSV_ROW_DELIMITER = "\\n"


class EndpointRole(Enum):
    """Direction of the endpoint in a migration."""

    SOURCE = "source"
    TARGET = "target"


class SettingsCategory(Enum):
    """Which settings variant an engine kind uses."""

    RELATIONAL = "relational"
    DYNAMODB = "dynamodb"
    S3 = "s3"


class SslMode(Enum):
    NONE = "none"
    REQUIRE = "require"
    VERIFY_CA = "verify-ca"
    VERIFY_FULL = "verify-full"


class EngineKind(Enum):
    """Engines supported by a DMS endpoint."""

    MYSQL = "mysql"
    ORACLE = "oracle"
    POSTGRES = "postgres"
    DYNAMODB = "dynamodb"
    MARIADB = "mariadb"
    AURORA = "aurora"
    AURORA_POSTGRESQL = "aurora-postgresql"
    REDSHIFT = "redshift"
    SYBASE = "sybase"
    SQLSERVER = "sqlserver"
    S3 = "s3"

    @property
    def category(self) -> SettingsCategory:
        if self is EngineKind.DYNAMODB:
            return SettingsCategory.DYNAMODB
        if self is EngineKind.S3:
            return SettingsCategory.S3
        return SettingsCategory.RELATIONAL


@dataclass(frozen=True)
class RelationalSettings:
    """Connection settings for database engines."""

    host: Optional[str] = None
    port: Optional[int] = None
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False, compare=False)
    database_name: Optional[str] = None
    extra_attributes: Optional[str] = None
    encryption_key_reference: Optional[str] = None
    ssl_mode: Optional[SslMode] = None


@dataclass(frozen=True)
class DynamoSettings:
    access_role_reference: str = ""


@dataclass(frozen=True)
class S3Settings:
    """S3 target settings. The csv/compression fields come from extra attributes."""

    access_role_reference: str = ""
    bucket_name: str = ""
    bucket_folder: str = ""
    compression_type: str = DEFAULT_COMPRESSION_TYPE
    csv_delimiter: str = DEFAULT_CSV_DELIMITER
    csv_row_delimiter: str = DEFAULT_CSV_ROW_DELIMITER


EndpointSettings = Union[RelationalSettings, DynamoSettings, S3Settings]

SETTINGS_TYPES = {
    SettingsCategory.RELATIONAL: RelationalSettings,
    SettingsCategory.DYNAMODB: DynamoSettings,
    SettingsCategory.S3: S3Settings,
}


@dataclass
class Endpoint:
    """A DMS endpoint, either as declared or as read back from the control plane."""

    identifier: str
    role: EndpointRole
    engine_kind: EngineKind
    settings: EndpointSettings
    certificate_reference: Optional[str] = None
    tags: Dict[str, str] = field(default_factory=dict)
    remote_reference: Optional[str] = None

    def __post_init__(self):
        expected = SETTINGS_TYPES[self.engine_kind.category]
        if not isinstance(self.settings, expected):
            raise TypeError(
                f"Engine '{self.engine_kind.value}' requires {expected.__name__}, "
                f"got {type(self.settings).__name__}"
            )

    @property
    def password(self) -> Optional[str]:
        return getattr(self.settings, "password", None)

    def with_secrets_from(self, other: Optional["Endpoint"]) -> "Endpoint":
        """
        Return a copy carrying the password of another endpoint.

        The control plane never returns secrets, so state read back from it
        needs the last known password restored before it can be compared
        against a declaration.
        """
        if other is None or not isinstance(self.settings, RelationalSettings):
            return self
        if self.settings.password is not None or other.password is None:
            return self
        return replace(self, settings=replace(self.settings, password=other.password))
