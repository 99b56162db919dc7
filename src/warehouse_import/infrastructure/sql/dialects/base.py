"""
Dialect capability set shared by the import engine.

A ``Dialect`` turns engine intents (create staging, load a file, update
changed rows, ...) into backend SQL. The engine never branches on the
backend name; everything backend specific is a method or attribute here,
overridden by the concrete dialects.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
)

from ..core.errors import MessageRule
from ..core.identifier import qualify_table, quote_identifier
from ..core.literals import quote_literal

if TYPE_CHECKING:
    from warehouse_import.io.connectors.csv_source import CsvSource

STAGING_TEXT = "text"
STAGING_CLONE = "clone"

LOAD_COUNT_ROWCOUNT = "rowcount"
LOAD_COUNT_RESULT_ROWS = "result_rows"
LOAD_COUNT_QUERY = "query"

Query = Tuple[str, Dict[str, Any]]


@dataclass(frozen=True)
class StorageCredentials:
    """Object storage credentials inlined into COPY statements."""

    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: Optional[str] = None

    @property
    def complete(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key and self.region)


@dataclass(frozen=True)
class RawColumn:
    """Column row as returned by a catalog query, before type parsing."""

    name: str
    data_type: str
    nullable: bool = True
    default_value: Optional[str] = None
    is_identity: bool = False


class Dialect:
    """Base capability set; concrete dialects override what differs."""

    name = "generic"
    quote_char = '"'
    backslash_escapes = False

    text_type = "VARCHAR(65535)"
    text_cast_type = "VARCHAR"
    timestamp_type = "TIMESTAMP"
    timestamp_literal_format = "%Y-%m-%d %H:%M:%S"
    row_number_column = "_row_number_"

    staging_shape = STAGING_TEXT
    temporary_staging = True
    qualify_staging_with_schema = True
    supports_atomic_rename = False
    coalesce_empty_values = False
    table_aliases = True

    discard_placeholder: Optional[str] = None
    requires_local_files = False
    supports_native_manifest = False
    load_count_strategy = LOAD_COUNT_ROWCOUNT
    load_count_query: Optional[str] = None
    load_warnings_query: Optional[str] = None
    load_errors_query: Optional[str] = None

    error_rules: Tuple[MessageRule, ...] = ()
    connect_args: Dict[str, Any] = {}

    def __init__(
        self,
        credentials: Optional[StorageCredentials] = None,
        manifest_chunk_size: int = 1000,
    ):
        self.credentials = credentials or StorageCredentials()
        self.manifest_chunk_size = manifest_chunk_size

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"

    # Quoting -------------------------------------------------------------

    def quote_identifier(self, name: str) -> str:
        return quote_identifier(name, self.quote_char)

    def quote_literal(self, value: str) -> str:
        return quote_literal(value, backslash_escapes=self.backslash_escapes)

    def qualify(self, table: str, schema: Optional[str] = None) -> str:
        return qualify_table(table, schema, self.quote_char)

    def qualify_staging(self, table: str, schema: Optional[str] = None) -> str:
        """Staging tables are unqualified where temporary tables live apart."""
        if self.qualify_staging_with_schema:
            return self.qualify(table, schema)
        return self.quote_identifier(table)

    def timestamp_literal(self, moment: datetime) -> str:
        return self.quote_literal(moment.strftime(self.timestamp_literal_format))

    # Expressions ---------------------------------------------------------

    def cast_text(self, expression: str) -> str:
        return f"CAST({expression} AS {self.text_cast_type})"

    def empty_to_null(self, expression: str) -> str:
        return (
            f"CASE WHEN {self.cast_text(expression)} = '' "
            f"THEN NULL ELSE {expression} END"
        )

    def source_value(self, expression: str, convert_empty_to_null: bool) -> str:
        """Value written to the target for one staging column."""
        if convert_empty_to_null:
            return self.empty_to_null(expression)
        if self.coalesce_empty_values:
            return f"COALESCE({expression}, '')"
        return expression

    def copy_value(self, expression: str, is_boolean: bool, convert_empty: bool) -> str:
        """Value selected from a source table when copying it into staging."""
        if is_boolean:
            return f"CASE WHEN {expression} THEN 1 ELSE 0 END"
        if convert_empty:
            return f"NULLIF({self.cast_text(expression)}, '')"
        return f"COALESCE({self.cast_text(expression)}, '')"

    def key_match(self, dest: str, src: str) -> str:
        return f"{dest} = {src}"

    def changed(self, dest: str, src: str) -> str:
        return (
            f"COALESCE({self.cast_text(dest)}, '') <> "
            f"COALESCE({self.cast_text(src)}, '')"
        )

    # DDL -----------------------------------------------------------------

    def _temporary(self) -> str:
        return "TEMPORARY " if self.temporary_staging else ""

    def build_create_text_table(self, table: str, columns: Sequence[str]) -> str:
        columns_sql = ", ".join(
            f"{self.quote_identifier(c)} {self.text_type}" for c in columns
        )
        return f"CREATE {self._temporary()}TABLE {table} ({columns_sql})"

    def build_clone_table(
        self, table: str, source: str, primary_key: Sequence[str]
    ) -> List[str]:
        statements = [f"CREATE {self._temporary()}TABLE {table} (LIKE {source})"]
        if primary_key:
            key_sql = ", ".join(self.quote_identifier(c) for c in primary_key)
            statements.append(f"ALTER TABLE {table} ADD PRIMARY KEY ({key_sql})")
        return statements

    def build_add_column(self, table: str, column: str, column_type: str) -> str:
        return f"ALTER TABLE {table} ADD COLUMN {self.quote_identifier(column)} {column_type}"

    def build_drop_table(self, table: str, temporary: bool = False) -> str:
        return f"DROP TABLE IF EXISTS {table}"

    def build_rename_table(
        self, table: str, new_name: str, schema: Optional[str] = None
    ) -> str:
        return f"ALTER TABLE {table} RENAME TO {self.quote_identifier(new_name)}"

    def build_swap(
        self,
        source: str,
        target: str,
        target_name: str,
        schema: Optional[str],
        columns: Sequence[str],
    ) -> List[str]:
        """Statements replacing table ``target`` by ``source`` under ``target_name``."""
        return [
            self.build_drop_table(target, temporary=self.temporary_staging),
            self.build_rename_table(source, target_name, schema),
        ]

    def build_truncate(self, table: str) -> str:
        return f"DELETE FROM {table}"

    def build_statement_timeout(self, seconds: int) -> Optional[str]:
        return None

    # Merge ---------------------------------------------------------------

    def table_refs(self, target: str, staging: str) -> Tuple[str, str, str, str]:
        """(target declaration, target reference, staging declaration, staging reference)."""
        if not self.table_aliases:
            return target, target, staging, staging
        dest = self.quote_identifier("dest")
        src = self.quote_identifier("src")
        return f"{target} AS {dest}", dest, f"{staging} AS {src}", src

    def build_update_changed(
        self,
        target: str,
        staging: str,
        assignments: Sequence[Tuple[str, str]],
        key_predicates: Sequence[str],
        changed_predicates: Sequence[str],
    ) -> str:
        dest_decl, _, src_decl, _ = self.table_refs(target, staging)
        set_sql = ", ".join(f"{self.quote_identifier(c)} = {e}" for c, e in assignments)
        return (
            f"UPDATE {dest_decl} SET {set_sql} FROM {src_decl} "
            f"WHERE {' AND '.join(key_predicates)} "
            f"AND ({' OR '.join(changed_predicates)})"
        )

    def build_delete_matched(
        self, target: str, staging: str, key_predicates: Sequence[str]
    ) -> str:
        dest_decl, _, src_decl, _ = self.table_refs(target, staging)
        return (
            f"DELETE FROM {src_decl} USING {dest_decl} "
            f"WHERE {' AND '.join(key_predicates)}"
        )

    # Loading -------------------------------------------------------------

    def validate_csv(self, csv: "CsvSource") -> None:
        """Reject CSV settings the backend cannot express."""

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
        raise NotImplementedError(f"{self.name} cannot load delimited files")

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
        raise NotImplementedError(f"{self.name} cannot load manifests natively")

    def mask_credentials(self, sql: str) -> str:
        """Hide storage secrets in a statement before it is logged or raised."""
        for secret in (self.credentials.access_key_id, self.credentials.secret_access_key):
            if secret:
                sql = sql.replace(secret, "***")
        return sql

    # Metadata ------------------------------------------------------------

    def columns_query(self, schema: Optional[str], table: str) -> Query:
        raise NotImplementedError

    def raw_column(self, row: Mapping[str, Any]) -> RawColumn:
        raise NotImplementedError

    def primary_key_query(self, schema: Optional[str], table: str) -> Query:
        raise NotImplementedError

    def primary_key_positions(self, rows: Sequence[Mapping[str, Any]]) -> List[Tuple[str, int]]:
        """(column, 1-based position) pairs from ``primary_key_query`` rows."""
        return [(row["column_name"], int(row["key_sequence"])) for row in rows]

    def table_info_query(self, schema: Optional[str], table: str) -> Query:
        raise NotImplementedError

    def table_info_row(self, row: Mapping[str, Any]) -> Mapping[str, Any]:
        """Map a ``table_info_query`` row to name, row_count and byte_size."""
        return row
