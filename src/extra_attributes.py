"""
Extra connection attribute codec for S3 endpoints.

S3 endpoints accept a ``key=value;key=value`` string overriding the
compression type and CSV delimiters. Keys match loosely: a key binds to a
field when its lowercased form *contains* the field token, so
``targetCsvDelimiter`` still sets the CSV delimiter. Output is canonical:
always the same three keys in the same order.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from models import (
    DEFAULT_COMPRESSION_TYPE,
    DEFAULT_CSV_DELIMITER,
    DEFAULT_CSV_ROW_DELIMITER,
)

logger = logging.getLogger(__name__)

# Checked in order; first token contained in the key wins
_KEY_TOKENS = (
    ("compressiontype", "compression_type"),
    ("csvdelimiter", "csv_delimiter"),
    ("csvrowdelimiter", "csv_row_delimiter"),
)


@dataclass(frozen=True)
class S3ExtraAttributes:
    compression_type: str = DEFAULT_COMPRESSION_TYPE
    csv_delimiter: str = DEFAULT_CSV_DELIMITER
    csv_row_delimiter: str = DEFAULT_CSV_ROW_DELIMITER


def parse_extra_attributes(raw: Optional[str]) -> S3ExtraAttributes:
    """
    Parse an extra attribute string, filling defaults for missing keys.

    Args:
        raw: The semicolon-delimited attribute string, or None.

    Returns:
        S3ExtraAttributes with overrides applied. Unrecognized keys and
        segments without ``=`` are ignored.
    """
    values = {}
    for segment in (raw or "").split(";"):
        if "=" not in segment:
            continue
        key, value = segment.split("=", 1)
        lowered = key.lower()
        for token, attr in _KEY_TOKENS:
            if token in lowered:
                values[attr] = value
                break
        else:
            logger.debug(f"Ignoring unrecognized extra attribute: {key}")

    return S3ExtraAttributes(**values)


def format_extra_attributes(
    compression_type: Optional[str] = None,
    csv_delimiter: Optional[str] = None,
    csv_row_delimiter: Optional[str] = None,
) -> str:
    """Serialize the three S3 attributes in canonical order, defaulting missing ones."""
    return (
        f"compressionType={compression_type or DEFAULT_COMPRESSION_TYPE};"
        f"csvDelimiter={csv_delimiter or DEFAULT_CSV_DELIMITER};"
        f"csvRowDelimiter={csv_row_delimiter or DEFAULT_CSV_ROW_DELIMITER}"
    )


def canonicalize_extra_attributes(raw: Optional[str]) -> str:
    """Parse then re-serialize, so equivalent inputs compare equal."""
    parsed = parse_extra_attributes(raw)
    return format_extra_attributes(
        parsed.compression_type, parsed.csv_delimiter, parsed.csv_row_delimiter
    )
