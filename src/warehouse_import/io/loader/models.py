"""
Data models of the import engine: options, source descriptors, table
metadata and the immutable import result.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from warehouse_import.io.connectors.csv_source import CsvSource


class ImportOptions(BaseModel):
    """
    Caller options for one import.

    Read-only to the engine; a single instance can be reused across imports.
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    incremental: bool = Field(
        default=False,
        description="Upsert into the target instead of replacing its content",
    )
    ignore_header_lines: int = Field(
        default=0, ge=0, description="Leading lines of each file to skip"
    )
    use_timestamp_column: bool = Field(
        default=True,
        description="Maintain the reserved last-write timestamp column",
    )
    convert_empty_to_null: FrozenSet[str] = Field(
        default_factory=frozenset,
        description="Columns whose empty values are written as NULL",
    )
    extra_load_options: Tuple[str, ...] = Field(
        default=(),
        description="Raw clauses appended to the backend load statement",
    )
    skip_columns_check: bool = Field(
        default=False,
        description="Discard import columns missing from the target instead of failing",
    )

    @field_validator('extra_load_options')
    @classmethod
    def validate_load_options(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        """Drop blank clauses."""
        return tuple(option.strip() for option in v if option and option.strip())


@dataclass(frozen=True)
class DelimitedFile:
    """One delimited file loaded into staging."""

    csv: CsvSource


@dataclass(frozen=True)
class DelimitedFileSet:
    """Ordered delimited files loaded one after another."""

    files: Tuple[CsvSource, ...]


@dataclass(frozen=True)
class ManifestOfFiles:
    """
    A manifest document listing files to load as one unit.

    ``manifest.path`` is the manifest URL; its CSV settings apply to every
    listed entry.
    """

    manifest: CsvSource


@dataclass(frozen=True)
class TableCopy:
    """An existing table copied into staging with a single INSERT ... SELECT."""

    table: str
    schema: Optional[str] = None


SourceDescriptor = Union[DelimitedFile, DelimitedFileSet, ManifestOfFiles, TableCopy]


@dataclass(frozen=True)
class ColumnDescriptor:
    """Normalized description of one table column."""

    name: str
    data_type: str
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    nullable: bool = True
    is_primary_key: bool = False
    primary_key_position: Optional[int] = None
    is_identity: bool = False
    default_value: Optional[str] = None
    unsigned: bool = False


@dataclass(frozen=True)
class TableInfo:
    """Approximate size of a table as reported by the catalog."""

    name: str
    approx_row_count: int = 0
    approx_byte_size: int = 0


@dataclass(frozen=True)
class PhaseTimer:
    """Wall-clock duration of one import phase."""

    name: str
    duration_seconds: float


@dataclass(frozen=True)
class ImportResult:
    """
    Outcome of a successful import.

    ``warnings`` maps a source file basename to the raw backend warning rows
    reported while loading it. ``imported_rows_count`` counts rows loaded
    into staging, before deduplication and merge.
    """

    warnings: Mapping[str, Tuple[Mapping[str, Any], ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    timers: Tuple[PhaseTimer, ...] = ()
    imported_rows_count: int = 0
    imported_columns: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data form for logging and serialization."""
        return {
            "warnings": {k: [dict(row) for row in v] for k, v in self.warnings.items()},
            "timers": [
                {"name": t.name, "duration_seconds": t.duration_seconds}
                for t in self.timers
            ],
            "imported_rows_count": self.imported_rows_count,
            "imported_columns": list(self.imported_columns),
        }
