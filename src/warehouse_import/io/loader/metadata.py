"""
Table metadata provider.

Reads column lists, primary keys and size estimates through the dialect's
catalog queries and normalizes backend type strings into ``ColumnDescriptor``.
"""

import re
from typing import List, NamedTuple, Optional, Tuple

from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.io.connectors.connection import ConnectionAdapter
from warehouse_import.utils.logging import get_logger

from .models import ColumnDescriptor, TableInfo

logger = get_logger(__name__)

_CHAR_RE = re.compile(r"^((?:var)?char)\((\d+)\)")
_CHARACTER_RE = re.compile(r"^character( varying)?\((\d+)\)")
_DECIMAL_RE = re.compile(
    r"^(decimal|numeric|number|float|double|real)\((\d+)\s*,\s*(\d+)\)"
)
_PRECISION_RE = re.compile(r"^(decimal|numeric|number)\((\d+)\)")
_INTEGER_RE = re.compile(r"^((?:big|medium|small|tiny)?int(?:eger)?)\(\d+\)")
_GENERIC_RE = re.compile(r"^([a-z_][a-z0-9_ ]*?)\s*\(.*\)")


class ParsedType(NamedTuple):
    data_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    unsigned: bool = False


def parse_column_type(raw: str) -> ParsedType:
    """
    Normalize a backend column type string.

    Examples:
        >>> parse_column_type("varchar(255)")
        ParsedType(data_type='varchar', length=255, precision=None, scale=None, unsigned=False)
        >>> parse_column_type("decimal(10,2)").scale
        2
        >>> parse_column_type("int(11) unsigned")
        ParsedType(data_type='int', length=None, precision=None, scale=None, unsigned=True)
    """
    value = raw.strip().lower()
    unsigned = False
    for modifier in (" zerofill", " unsigned"):
        if value.endswith(modifier):
            unsigned = unsigned or modifier == " unsigned"
            value = value[: -len(modifier)].rstrip()

    match = _CHAR_RE.match(value)
    if match:
        return ParsedType(match.group(1), length=int(match.group(2)), unsigned=unsigned)
    match = _CHARACTER_RE.match(value)
    if match:
        data_type = "varchar" if match.group(1) else "char"
        return ParsedType(data_type, length=int(match.group(2)), unsigned=unsigned)
    match = _DECIMAL_RE.match(value)
    if match:
        return ParsedType(
            match.group(1),
            precision=int(match.group(2)),
            scale=int(match.group(3)),
            unsigned=unsigned,
        )
    match = _PRECISION_RE.match(value)
    if match:
        return ParsedType(
            match.group(1), precision=int(match.group(2)), scale=0, unsigned=unsigned
        )
    # display width is not a length
    match = _INTEGER_RE.match(value)
    if match:
        return ParsedType(match.group(1), unsigned=unsigned)
    match = _GENERIC_RE.match(value)
    if match:
        return ParsedType(match.group(1), unsigned=unsigned)
    return ParsedType(value, unsigned=unsigned)


class TableMetadataProvider:
    """Catalog lookups for target and source tables."""

    def __init__(self, connection: ConnectionAdapter):
        self.connection = connection
        self.dialect = connection.dialect

    def _not_found(self, schema: Optional[str], table: str) -> DataImportError:
        location = f"schema '{schema}'" if schema else "the current schema"
        return DataImportError(
            ImportErrorKind.TABLE_NOT_FOUND,
            f"Table '{table}' not found in {location}",
        )

    def _primary_key_positions(
        self, schema: Optional[str], table: str
    ) -> List[Tuple[str, int]]:
        sql, params = self.dialect.primary_key_query(schema, table)
        rows = self.connection.fetch_all(sql, params)
        return sorted(self.dialect.primary_key_positions(rows), key=lambda p: p[1])

    def list_columns(self, schema: Optional[str], table: str) -> List[ColumnDescriptor]:
        """Ordered column descriptors; raises ``TableNotFound`` for missing tables."""
        sql, params = self.dialect.columns_query(schema, table)
        rows = self.connection.fetch_all(sql, params)
        if not rows:
            raise self._not_found(schema, table)

        key_positions = dict(self._primary_key_positions(schema, table))
        columns = []
        for row in rows:
            raw = self.dialect.raw_column(row)
            parsed = parse_column_type(raw.data_type)
            position = key_positions.get(raw.name)
            columns.append(
                ColumnDescriptor(
                    name=raw.name,
                    data_type=parsed.data_type,
                    length=parsed.length,
                    precision=parsed.precision,
                    scale=parsed.scale,
                    nullable=raw.nullable,
                    is_primary_key=position is not None,
                    primary_key_position=position,
                    is_identity=raw.is_identity,
                    default_value=raw.default_value,
                    unsigned=parsed.unsigned,
                )
            )
        logger.debug(
            "metadata.columns_listed", schema=schema, table=table, count=len(columns)
        )
        return columns

    def get_primary_key_columns(self, schema: Optional[str], table: str) -> List[str]:
        """Primary key column names in key order; empty when there is none."""
        positions = self._primary_key_positions(schema, table)
        if not positions:
            # distinguish "no key" from "no table"
            self.list_columns(schema, table)
        return [name for name, _ in positions]

    def describe_table(self, schema: Optional[str], table: str) -> TableInfo:
        sql, params = self.dialect.table_info_query(schema, table)
        rows = self.connection.fetch_all(sql, params)
        if not rows:
            self.list_columns(schema, table)
            return TableInfo(name=table)
        row = self.dialect.table_info_row(rows[0])
        return TableInfo(
            name=row["name"],
            approx_row_count=int(row["row_count"] or 0),
            approx_byte_size=int(row["byte_size"] or 0),
        )


def primary_key_of(columns: List[ColumnDescriptor]) -> List[str]:
    """Primary key column names ordered by their position in the key."""
    keyed = [c for c in columns if c.is_primary_key]
    return [c.name for c in sorted(keyed, key=lambda c: c.primary_key_position or 0)]
