"""Staging/merge import engine."""

from .dedupe import DedupeEngine
from .importer import StagingImporter
from .merge import MergeEngine
from .metadata import TableMetadataProvider, parse_column_type
from .models import (
    ColumnDescriptor,
    DelimitedFile,
    DelimitedFileSet,
    ImportOptions,
    ImportResult,
    ManifestOfFiles,
    PhaseTimer,
    SourceDescriptor,
    TableCopy,
    TableInfo,
)
from .result import ResultBuilder
from .source_loader import SourceLoader, StagingLayout
from .staging import StagingTableManager

__all__ = [
    "ColumnDescriptor",
    "DedupeEngine",
    "DelimitedFile",
    "DelimitedFileSet",
    "ImportOptions",
    "ImportResult",
    "ManifestOfFiles",
    "MergeEngine",
    "PhaseTimer",
    "ResultBuilder",
    "SourceDescriptor",
    "SourceLoader",
    "StagingImporter",
    "StagingLayout",
    "StagingTableManager",
    "TableCopy",
    "TableInfo",
    "TableMetadataProvider",
    "parse_column_type",
]
