"""
SQL dialect registry.

Usage:
    >>> dialect = get_dialect("mysql")
    >>> dialect.quote_identifier("order")
    '`order`'
"""

from typing import Dict, Optional, Type

from warehouse_import.config import get_settings

from .base import Dialect, StorageCredentials
from .mysql import MySQLDialect
from .redshift import RedshiftDialect
from .snowflake import SnowflakeDialect

DIALECTS: Dict[str, Type[Dialect]] = {
    MySQLDialect.name: MySQLDialect,
    RedshiftDialect.name: RedshiftDialect,
    SnowflakeDialect.name: SnowflakeDialect,
}

# SQLAlchemy dialect names that map onto one of ours
_ALIASES = {
    "mariadb": MySQLDialect.name,
    "redshift_connector": RedshiftDialect.name,
}


def get_dialect(
    name: str,
    credentials: Optional[StorageCredentials] = None,
    manifest_chunk_size: Optional[int] = None,
) -> Dialect:
    """Instantiate the dialect registered under ``name`` (case-insensitive).

    Storage credentials and the manifest chunk size default to settings.
    """
    key = name.lower()
    key = _ALIASES.get(key, key)
    try:
        dialect_cls = DIALECTS[key]
    except KeyError:
        raise ValueError(
            f"Unsupported dialect '{name}'. Supported: {sorted(DIALECTS)}"
        ) from None

    settings = get_settings()
    if credentials is None:
        credentials = StorageCredentials(
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            region=settings.aws_region,
        )
    return dialect_cls(
        credentials=credentials,
        manifest_chunk_size=manifest_chunk_size or settings.manifest_chunk_size,
    )


__all__ = [
    "DIALECTS",
    "Dialect",
    "MySQLDialect",
    "RedshiftDialect",
    "SnowflakeDialect",
    "StorageCredentials",
    "get_dialect",
]
