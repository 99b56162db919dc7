"""
Source loader: fills an existing staging table from one source descriptor.

Delimited files, file sets and manifests go through the dialect's bulk load
statement (``LOAD DATA``/``COPY``); table copies are one INSERT ... SELECT.
Load failures surface as ``InvalidSourceData`` unless the dialect's error
rules recognized a more specific kind.
"""

import gzip
import shutil
import tempfile
from contextlib import nullcontext
from dataclasses import dataclass, replace
from pathlib import Path
from typing import AbstractSet, List, Optional, Sequence

from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.infrastructure.sql.dialects.base import (
    LOAD_COUNT_QUERY,
    LOAD_COUNT_RESULT_ROWS,
)
from warehouse_import.infrastructure.sql.operations import MergeBuilder
from warehouse_import.io.connectors.blob_fetcher import (
    BlobFetcher,
    HttpBlobFetcher,
    ManifestEntry,
    load_manifest,
)
from warehouse_import.io.connectors.connection import ConnectionAdapter
from warehouse_import.io.connectors.csv_source import CsvSource
from warehouse_import.utils.logging import get_logger

from .metadata import TableMetadataProvider
from .models import (
    DelimitedFile,
    DelimitedFileSet,
    ImportOptions,
    ManifestOfFiles,
    SourceDescriptor,
    TableCopy,
)
from .result import ResultBuilder

logger = get_logger(__name__)

BOOLEAN_TYPES = ("bool", "boolean")


@dataclass(frozen=True)
class StagingLayout:
    """
    Where and how rows land in staging.

    ``table`` is the qualified staging reference, ``columns`` the staging
    columns that carry data into the merge (target spelling) and
    ``load_columns`` the file column order, with discarded columns already
    mapped to the dialect's placeholder or to an extra staging column.
    """

    table: str
    columns: Sequence[str]
    load_columns: Sequence[str]


class SourceLoader:
    """Dialect-driven bulk loading into staging."""

    def __init__(
        self,
        connection: ConnectionAdapter,
        metadata: TableMetadataProvider,
        builder: MergeBuilder,
        blob_fetcher: Optional[BlobFetcher] = None,
        schema: Optional[str] = None,
    ):
        self.connection = connection
        self.dialect = connection.dialect
        self.metadata = metadata
        self.builder = builder
        self._blob_fetcher = blob_fetcher
        self.schema = schema

    @property
    def blob_fetcher(self) -> BlobFetcher:
        if self._blob_fetcher is None:
            self._blob_fetcher = HttpBlobFetcher()
        return self._blob_fetcher

    def load(
        self,
        source: SourceDescriptor,
        layout: StagingLayout,
        options: ImportOptions,
        convert_empty_to_null: AbstractSet[str],
        result: ResultBuilder,
    ) -> None:
        if isinstance(source, DelimitedFile):
            self._load_files([source.csv], layout, options, result)
        elif isinstance(source, DelimitedFileSet):
            self._load_files(source.files, layout, options, result)
        elif isinstance(source, ManifestOfFiles):
            self._load_manifest(source.manifest, layout, options, result)
        elif isinstance(source, TableCopy):
            self._copy_table(source, layout, convert_empty_to_null, result)
        else:
            raise TypeError(f"Unsupported source descriptor: {type(source).__name__}")

    # Files -----------------------------------------------------------------

    def _load_files(
        self,
        files: Sequence[CsvSource],
        layout: StagingLayout,
        options: ImportOptions,
        result: ResultBuilder,
    ) -> None:
        with result.timer("copy_to_staging"):
            for csv in files:
                with result.timer(f"copy_to_staging.{csv.basename}"):
                    self._load_file(csv, layout, options, result)

    def _load_file(
        self,
        csv: CsvSource,
        layout: StagingLayout,
        options: ImportOptions,
        result: ResultBuilder,
    ) -> None:
        if self.dialect.requires_local_files:
            with tempfile.TemporaryDirectory(prefix="warehouse-import-") as workdir:
                local = self._localize(csv, Path(workdir))
                self._run_file_load(csv.basename, local, layout, options, result, gzipped=False)
        else:
            self._run_file_load(csv.basename, csv, layout, options, result, gzipped=csv.is_gzipped)

    def _localize(self, csv: CsvSource, workdir: Path) -> CsvSource:
        """Local, uncompressed copy of ``csv`` for client-side loads."""
        path = csv.path
        try:
            if csv.is_remote:
                path = str(self.blob_fetcher.download(csv.path, workdir / csv.basename))
            if csv.is_gzipped:
                inflated = workdir / f"{csv.basename}.csv"
                with gzip.open(path, "rb") as compressed, open(inflated, "wb") as plain:
                    shutil.copyfileobj(compressed, plain)
                path = str(inflated)
        except OSError as exc:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Load error: cannot read {csv.path}: {exc}",
                original_error=exc,
            ) from exc
        return replace(csv, path=path)

    def _run_file_load(
        self,
        basename: str,
        csv: CsvSource,
        layout: StagingLayout,
        options: ImportOptions,
        result: ResultBuilder,
        gzipped: bool,
    ) -> None:
        sql = self.dialect.build_file_load(
            layout.table,
            layout.load_columns,
            csv,
            csv.path,
            options.ignore_header_lines,
            gzipped,
            options.extra_load_options,
        )
        self._run_load(sql, basename, result)

    def _run_load(self, sql: str, basename: str, result: ResultBuilder) -> int:
        warnings_query = self.dialect.load_warnings_query
        # load warnings are cleared by the next statement, an autocommit included
        scope = self.connection.transaction() if warnings_query else nullcontext()
        with scope:
            try:
                if self.dialect.load_count_strategy == LOAD_COUNT_RESULT_ROWS:
                    rows = self.connection.fetch_all(sql)
                    loaded = sum(int(row.get("rows_loaded") or 0) for row in rows)
                elif self.dialect.load_count_strategy == LOAD_COUNT_QUERY:
                    self.connection.execute(sql)
                    loaded = int(
                        self.connection.fetch_all(self.dialect.load_count_query)[0]["loaded_rows"]
                    )
                else:
                    loaded = self.connection.execute(sql)
            except DataImportError as exc:
                if exc.kind != ImportErrorKind.UNKNOWN_ERROR:
                    raise
                raise self._load_failure(exc) from exc
            warnings = self.connection.fetch_all(warnings_query) if warnings_query else []

        if warnings:
            result.add_warnings(basename, warnings)
            logger.warning("source.load.warnings", file=basename, count=len(warnings))

        result.add_rows(loaded)
        logger.info("source.loaded", file=basename, rows=loaded)
        return loaded

    def _load_failure(self, error: DataImportError) -> DataImportError:
        """Reclassify an unrecognized load error as ``InvalidSourceData``."""
        message = error.message
        if self.dialect.load_errors_query:
            try:
                rows = self.connection.fetch_all(self.dialect.load_errors_query)
            except DataImportError as lookup_error:
                logger.warning("source.load_errors_unavailable", **lookup_error.to_dict())
                rows = []
            if rows:
                message = "\n".join(
                    f"Line {row['line_number']} - {str(row['err_reason']).strip()}"
                    for row in rows
                )
        logger.error("source.load.failed", message=message)
        return DataImportError(
            ImportErrorKind.INVALID_SOURCE_DATA,
            f"Load error: {message}",
            original_error=error.original_error or error,
            sql=error.sql,
        )

    # Manifests -------------------------------------------------------------

    def _available_entries(self, entries: Sequence[ManifestEntry]) -> List[ManifestEntry]:
        """
        Entries that exist; a missing mandatory entry aborts before any load.
        """
        available = []
        for entry in entries:
            if self.blob_fetcher.exists(entry.url):
                available.append(entry)
            elif entry.mandatory:
                raise DataImportError(
                    ImportErrorKind.MANDATORY_FILE_NOT_FOUND,
                    f"Mandatory file '{entry.url}' was not found",
                )
            else:
                logger.warning("source.manifest_entry_missing", url=entry.url)
        return available

    def _load_manifest(
        self,
        manifest_csv: CsvSource,
        layout: StagingLayout,
        options: ImportOptions,
        result: ResultBuilder,
    ) -> None:
        with result.timer("copy_to_staging"):
            manifest = load_manifest(self.blob_fetcher, manifest_csv.path)
            entries = self._available_entries(manifest.entries)
            if not entries:
                logger.info("source.manifest_empty", manifest=manifest_csv.path)
                return

            entry_files = [replace(manifest_csv, path=entry.url) for entry in entries]
            if self.dialect.requires_local_files or not self.dialect.supports_native_manifest:
                for csv in entry_files:
                    with result.timer(f"copy_to_staging.{csv.basename}"):
                        self._load_file(csv, layout, options, result)
                return

            statements = self.dialect.build_manifest_loads(
                layout.table,
                layout.load_columns,
                manifest_csv,
                manifest_csv.path,
                [csv.path for csv in entry_files],
                options.ignore_header_lines,
                entry_files[0].is_gzipped,
                options.extra_load_options,
            )
            with result.timer(f"copy_to_staging.{manifest_csv.basename}"):
                for sql in statements:
                    self._run_load(sql, manifest_csv.basename, result)

    # Table copy ------------------------------------------------------------

    def _copy_table(
        self,
        source: TableCopy,
        layout: StagingLayout,
        convert_empty_to_null: AbstractSet[str],
        result: ResultBuilder,
    ) -> None:
        schema = source.schema or self.schema
        source_columns = {
            c.name.lower(): c for c in self.metadata.list_columns(schema, source.table)
        }
        missing = [c for c in layout.columns if c.lower() not in source_columns]
        if missing:
            raise DataImportError(
                ImportErrorKind.COLUMN_MISMATCH,
                f"Columns {', '.join(missing)} not found in source table '{source.table}'",
            )

        selected = [source_columns[c.lower()] for c in layout.columns]
        booleans = {
            column
            for column, descriptor in zip(layout.columns, selected)
            if descriptor.data_type in BOOLEAN_TYPES
        }
        sql = self.builder.copy_table(
            layout.table,
            self.dialect.qualify(source.table, schema),
            layout.columns,
            [d.name for d in selected],
            booleans,
            convert_empty_to_null,
        )
        with result.timer("copy_to_staging"):
            try:
                loaded = self.connection.execute(sql)
            except DataImportError as exc:
                if exc.kind != ImportErrorKind.UNKNOWN_ERROR:
                    raise
                raise self._load_failure(exc) from exc
            if loaded < 0:
                loaded = int(
                    self.connection.fetch_all(f"SELECT COUNT(*) AS loaded_rows FROM {layout.table}")[0]["loaded_rows"]
                )
        result.add_rows(loaded)
        logger.info("source.table_copied", source=source.table, rows=loaded)
