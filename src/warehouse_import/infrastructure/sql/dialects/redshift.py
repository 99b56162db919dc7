"""
Redshift dialect.

Staging tables are temporary clones of the target (``CREATE TABLE ... (LIKE)``
with the primary key re-added), files are loaded from S3 with ``COPY`` and
DDL is transactional, so table swaps run inside a transaction.
"""

from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence, Tuple

from warehouse_import.exceptions import DataImportError, ImportErrorKind

from ..core.errors import MessageRule
from .base import (
    LOAD_COUNT_QUERY,
    STAGING_CLONE,
    Dialect,
    Query,
    RawColumn,
)

if TYPE_CHECKING:
    from warehouse_import.io.connectors.csv_source import CsvSource


class RedshiftDialect(Dialect):
    """Amazon Redshift dialect."""

    name = "redshift"

    staging_shape = STAGING_CLONE
    qualify_staging_with_schema = False
    supports_atomic_rename = True
    table_aliases = False

    supports_native_manifest = True
    load_count_strategy = LOAD_COUNT_QUERY
    load_count_query = "SELECT pg_last_copy_count() AS loaded_rows"
    load_errors_query = (
        "SELECT line_number, err_reason FROM stl_load_errors "
        "WHERE query = pg_last_query_id() ORDER BY line_number"
    )

    error_rules = (
        MessageRule.of(
            r"Mandatory url is not present in manifest file",
            ImportErrorKind.MANDATORY_FILE_NOT_FOUND,
        ),
        MessageRule.of(
            r"canceling statement due to statement timeout|57014",
            ImportErrorKind.QUERY_TIMEOUT,
        ),
        MessageRule.of(r"Datatype mismatch", ImportErrorKind.DATA_TYPE_MISMATCH),
        MessageRule.of(
            r"String length exceeds DDL length",
            ImportErrorKind.STRING_TOO_LONG,
        ),
        MessageRule.of(
            r'relation "([^"]*)" does not exist',
            ImportErrorKind.TABLE_NOT_FOUND,
            "Table '%s' does not exist",
            (1,),
        ),
    )

    def build_statement_timeout(self, seconds: int) -> Optional[str]:
        return f"SET statement_timeout TO {int(seconds) * 1000}"

    def copy_value(self, expression: str, is_boolean: bool, convert_empty: bool) -> str:
        if is_boolean:
            return f"DECODE({expression}, true, 1, 0)"
        return super().copy_value(expression, is_boolean, convert_empty)

    def validate_csv(self, csv: "CsvSource") -> None:
        if csv.escape_char and csv.escape_char != "\\":
            raise DataImportError(
                ImportErrorKind.INVALID_CSV_PARAMS,
                "Only backslash can be used as escape character",
            )

    def _copy_command(
        self,
        table: str,
        columns: Sequence[str],
        csv: "CsvSource",
        location: str,
        ignore_header_lines: int,
        gzipped: bool,
        manifest: bool,
        extra_options: Sequence[str],
    ) -> str:
        if not self.credentials.complete:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                "S3 credentials and region are required for COPY",
            )
        columns_sql = ", ".join(self.quote_identifier(c) for c in columns)
        credentials = self.quote_literal(
            f"aws_access_key_id={self.credentials.access_key_id};"
            f"aws_secret_access_key={self.credentials.secret_access_key}"
        )
        parts = [
            f"COPY {table} ({columns_sql})",
            f"FROM {self.quote_literal(location)}",
            f"CREDENTIALS {credentials}",
            f"DELIMITER {self.quote_literal(csv.delimiter)}",
            f"REGION {self.quote_literal(self.credentials.region)}",
        ]
        if csv.escape_char:
            parts.append("ESCAPE")
        elif csv.enclosure:
            parts.append(f"CSV QUOTE {self.quote_literal(csv.enclosure)}")
        else:
            parts.append("CSV")
        if gzipped:
            parts.append("GZIP")
        if manifest:
            parts.append("MANIFEST")
        parts.append(f"IGNOREHEADER {int(ignore_header_lines)}")
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
        return self._copy_command(
            table, columns, csv, location, ignore_header_lines, gzipped, False, extra_options
        )

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
        return [
            self._copy_command(
                table,
                columns,
                csv,
                manifest_url,
                ignore_header_lines,
                gzipped,
                True,
                extra_options,
            )
        ]

    def columns_query(self, schema: Optional[str], table: str) -> Query:
        sql = """
            SELECT
                a.attnum AS position,
                a.attname AS column_name,
                FORMAT_TYPE(a.atttypid, a.atttypmod) AS column_type,
                a.attnotnull AS not_null,
                pg_get_expr(d.adbin, d.adrelid) AS column_default
            FROM pg_attribute AS a
                JOIN pg_class AS c ON a.attrelid = c.oid
                JOIN pg_namespace AS n ON c.relnamespace = n.oid
                LEFT OUTER JOIN pg_attrdef AS d
                    ON d.adrelid = c.oid AND d.adnum = a.attnum
            WHERE a.attnum > 0
              AND NOT a.attisdropped
              AND c.relname = :table
              AND n.nspname = COALESCE(:schema, current_schema())
            ORDER BY a.attnum
        """
        return sql, {"schema": schema, "table": table}

    def raw_column(self, row: Mapping[str, Any]) -> RawColumn:
        default = row["column_default"]
        return RawColumn(
            name=row["column_name"],
            data_type=row["column_type"],
            nullable=not row["not_null"],
            default_value=default,
            is_identity=bool(
                default and (default.startswith("nextval") or "identity" in default)
            ),
        )

    def primary_key_query(self, schema: Optional[str], table: str) -> Query:
        sql = """
            SELECT
                a.attname AS column_name,
                a.attnum AS position,
                ARRAY_TO_STRING(co.conkey, ',') AS conkey
            FROM pg_constraint AS co
                JOIN pg_class AS c ON co.conrelid = c.oid
                JOIN pg_namespace AS n ON c.relnamespace = n.oid
                JOIN pg_attribute AS a
                    ON a.attrelid = c.oid AND a.attnum = ANY(co.conkey)
            WHERE co.contype = 'p'
              AND c.relname = :table
              AND n.nspname = COALESCE(:schema, current_schema())
        """
        return sql, {"schema": schema, "table": table}

    def primary_key_positions(
        self, rows: Sequence[Mapping[str, Any]]
    ) -> List[Tuple[str, int]]:
        positions = []
        for row in rows:
            key_order = [int(n) for n in str(row["conkey"]).split(",")]
            positions.append((row["column_name"], key_order.index(int(row["position"])) + 1))
        return sorted(positions, key=lambda item: item[1])

    def table_info_query(self, schema: Optional[str], table: str) -> Query:
        # svv_table_info only lists tables that hold data
        sql = """
            SELECT
                "table" AS name,
                tbl_rows AS row_count,
                size * 1024 * 1024 AS byte_size
            FROM svv_table_info
            WHERE "table" = :table
              AND schema = COALESCE(:schema, current_schema())
        """
        return sql, {"schema": schema, "table": table}
