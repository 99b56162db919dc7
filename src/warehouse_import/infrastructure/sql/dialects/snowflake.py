"""
Snowflake dialect.

Staging tables are temporary all-``VARCHAR`` tables in the target schema.
Files are loaded with ``COPY INTO`` straight from S3; sliced manifests are
expanded client side and loaded in ``FILES = (...)`` chunks.
"""

from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

from warehouse_import.exceptions import DataImportError, ImportErrorKind

from ..core.errors import MessageRule
from .base import LOAD_COUNT_RESULT_ROWS, Dialect, Query, RawColumn

if TYPE_CHECKING:
    from warehouse_import.io.connectors.csv_source import CsvSource


class SnowflakeDialect(Dialect):
    """Snowflake dialect."""

    name = "snowflake"
    backslash_escapes = True

    text_type = "VARCHAR"
    timestamp_type = "TIMESTAMP_NTZ"

    coalesce_empty_values = True
    supports_native_manifest = True
    load_count_strategy = LOAD_COUNT_RESULT_ROWS

    error_rules = (
        MessageRule.of(
            r"String '([^']*)' is too long .* SQL state 22000",
            ImportErrorKind.STRING_TOO_LONG,
            "String '%s' cannot be inserted because it's bigger than column size",
            (1,),
        ),
        MessageRule.of(
            r"Remote file '([^']*)' was not found",
            ImportErrorKind.MANDATORY_FILE_NOT_FOUND,
            "Remote file '%s' was not found",
            (1,),
        ),
        MessageRule.of(
            r"Statement reached its statement or warehouse timeout",
            ImportErrorKind.QUERY_TIMEOUT,
        ),
        MessageRule.of(
            r"Numeric value '([^']*)' is not recognized",
            ImportErrorKind.DATA_TYPE_MISMATCH,
            "Numeric value '%s' is not recognized",
            (1,),
        ),
        MessageRule.of(
            r"does not exist or not authorized",
            ImportErrorKind.TABLE_NOT_FOUND,
        ),
    )

    def key_match(self, dest: str, src: str) -> str:
        return f"{dest} = COALESCE({src}, '')"

    def build_truncate(self, table: str) -> str:
        return f"TRUNCATE TABLE {table}"

    def build_rename_table(
        self, table: str, new_name: str, schema: Optional[str] = None
    ) -> str:
        return f"ALTER TABLE {table} RENAME TO {self.qualify(new_name, schema)}"

    def build_statement_timeout(self, seconds: int) -> Optional[str]:
        return f"ALTER SESSION SET STATEMENT_TIMEOUT_IN_SECONDS = {int(seconds)}"

    def _require_credentials(self) -> None:
        if not self.credentials.complete:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                "S3 credentials and region are required for COPY INTO",
            )

    def _file_format(self, csv: "CsvSource", ignore_header_lines: int) -> str:
        options = [f"FIELD_DELIMITER = {self.quote_literal(csv.delimiter)}"]
        if ignore_header_lines > 0:
            options.append(f"SKIP_HEADER = {int(ignore_header_lines)}")
        if csv.enclosure:
            options.append(
                f"FIELD_OPTIONALLY_ENCLOSED_BY = {self.quote_literal(csv.enclosure)}"
            )
            options.append("ESCAPE_UNENCLOSED_FIELD = NONE")
        elif csv.escape_char:
            options.append(
                f"ESCAPE_UNENCLOSED_FIELD = {self.quote_literal(csv.escape_char)}"
            )
        return f"FILE_FORMAT = (TYPE = CSV {' '.join(options)})"

    def _copy_into(
        self,
        table: str,
        location: str,
        csv: "CsvSource",
        ignore_header_lines: int,
        extra_options: Sequence[str],
        files: Sequence[str] = (),
    ) -> str:
        parts = [
            f"COPY INTO {table}",
            f"FROM {self.quote_literal(location)}",
            "CREDENTIALS = (AWS_KEY_ID = {} AWS_SECRET_KEY = {})".format(
                self.quote_literal(self.credentials.access_key_id),
                self.quote_literal(self.credentials.secret_access_key),
            ),
            f"REGION = {self.quote_literal(self.credentials.region)}",
            self._file_format(csv, ignore_header_lines),
        ]
        if files:
            parts.append(
                f"FILES = ({', '.join(self.quote_literal(f) for f in files)})"
            )
        parts.extend(extra_options)
        return " ".join(parts)

    def build_file_load(
        self,
        table: str,
        columns: Sequence[str],
        csv: "CsvSource",
        location: str,
        ignore_header_lines: int,
        gzipped: bool,
        extra_options: Sequence[str] = (),
    ) -> str:
        # Staging columns are positional, COPY INTO takes no column list
        self._require_credentials()
        return self._copy_into(table, location, csv, ignore_header_lines, extra_options)

    def build_manifest_loads(
        self,
        table: str,
        columns: Sequence[str],
        csv: "CsvSource",
        manifest_url: str,
        entry_urls: Sequence[str],
        ignore_header_lines: int,
        gzipped: bool,
        extra_options: Sequence[str] = (),
    ) -> List[str]:
        self._require_credentials()
        bucket = urlparse(manifest_url).netloc
        prefix = f"s3://{bucket}"
        relative = [url.replace(f"{prefix}/", "", 1) for url in entry_urls]
        size = self.manifest_chunk_size
        return [
            self._copy_into(
                table,
                prefix,
                csv,
                ignore_header_lines,
                extra_options,
                files=relative[start : start + size],
            )
            for start in range(0, len(relative), size)
        ]

    def columns_query(self, schema: Optional[str], table: str) -> Query:
        return f"DESC TABLE {self.qualify(table, schema)}", {}

    def raw_column(self, row: Mapping[str, Any]) -> RawColumn:
        default = row.get("default")
        return RawColumn(
            name=row["name"],
            data_type=row["type"],
            nullable=str(row.get("null?", "Y")).upper() == "Y",
            default_value=default,
            is_identity=bool(default and "IDENTITY" in str(default).upper()),
        )

    def primary_key_query(self, schema: Optional[str], table: str) -> Query:
        return f"SHOW PRIMARY KEYS IN TABLE {self.qualify(table, schema)}", {}

    def table_info_query(self, schema: Optional[str], table: str) -> Query:
        sql = f"SHOW TABLES LIKE {self.quote_literal(table)}"
        if schema:
            sql += f" IN SCHEMA {self.quote_identifier(schema)}"
        return sql, {}

    def table_info_row(self, row: Mapping[str, Any]) -> Mapping[str, Any]:
        return {
            "name": row["name"],
            "row_count": row.get("rows"),
            "byte_size": row.get("bytes"),
        }
