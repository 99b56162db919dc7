"""
MySQL dialect.

Files are loaded with ``LOAD DATA LOCAL INFILE`` from the client host, so
remote entries are downloaded first and gzip files are inflated locally.
Staging tables are ``TEMPORARY`` and live in the session's current database.
"""

from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Sequence, Tuple

from warehouse_import.exceptions import ImportErrorKind

from ..core.errors import MessageRule
from .base import Dialect, Query, RawColumn

if TYPE_CHECKING:
    from warehouse_import.io.connectors.csv_source import CsvSource


class MySQLDialect(Dialect):
    """MySQL 8 dialect."""

    name = "mysql"
    quote_char = "`"
    backslash_escapes = True

    text_type = "TEXT"
    text_cast_type = "CHAR"
    timestamp_type = "TIMESTAMP NULL"

    qualify_staging_with_schema = False
    discard_placeholder = "@dummy"
    requires_local_files = True
    load_warnings_query = "SHOW WARNINGS"

    # LOAD DATA LOCAL needs to be allowed on the client side
    connect_args: Dict[str, Any] = {"local_infile": True}

    error_rules = (
        MessageRule.of(
            r"maximum statement execution time exceeded",
            ImportErrorKind.QUERY_TIMEOUT,
        ),
        MessageRule.of(
            r"Table '([^']*)' doesn't exist",
            ImportErrorKind.TABLE_NOT_FOUND,
            "Table '%s' does not exist",
            (1,),
        ),
        MessageRule.of(
            r"Data too long for column '([^']*)'",
            ImportErrorKind.STRING_TOO_LONG,
            "Value for column '%s' is bigger than column size",
            (1,),
        ),
        MessageRule.of(
            r"Incorrect \w+ value: '([^']*)' for column '([^']*)'",
            ImportErrorKind.DATA_TYPE_MISMATCH,
            "Value '%s' does not match type of column '%s'",
            (1, 2),
        ),
    )

    def build_drop_table(self, table: str, temporary: bool = False) -> str:
        if temporary:
            return f"DROP TEMPORARY TABLE IF EXISTS {table}"
        return f"DROP TABLE IF EXISTS {table}"

    def changed(self, dest: str, src: str) -> str:
        # byte comparison, the column collation may ignore case and accents
        return (
            f"CAST(COALESCE({self.cast_text(dest)}, '') AS BINARY) <> "
            f"CAST(COALESCE({self.cast_text(src)}, '') AS BINARY)"
        )

    def build_clone_table(
        self, table: str, source: str, primary_key: Sequence[str]
    ) -> List[str]:
        # LIKE copies the key definition already
        return [f"CREATE {self._temporary()}TABLE {table} LIKE {source}"]

    def build_swap(
        self,
        source: str,
        target: str,
        target_name: str,
        schema: Optional[str],
        columns: Sequence[str],
    ) -> List[str]:
        # ALTER TABLE commits implicitly even on temporary tables
        columns_sql = ", ".join(self.quote_identifier(c) for c in columns)
        return [
            f"DELETE FROM {target}",
            f"INSERT INTO {target} ({columns_sql}) SELECT {columns_sql} FROM {source}",
            self.build_drop_table(source, temporary=True),
        ]

    def build_statement_timeout(self, seconds: int) -> Optional[str]:
        return f"SET SESSION max_execution_time = {int(seconds) * 1000}"

    def build_update_changed(
        self,
        target: str,
        staging: str,
        assignments: Sequence[Tuple[str, str]],
        key_predicates: Sequence[str],
        changed_predicates: Sequence[str],
    ) -> str:
        dest_decl, dest, src_decl, _ = self.table_refs(target, staging)
        set_sql = ", ".join(
            f"{dest}.{self.quote_identifier(c)} = {e}" for c, e in assignments
        )
        return (
            f"UPDATE {dest_decl} INNER JOIN {src_decl} "
            f"ON {' AND '.join(key_predicates)} "
            f"SET {set_sql} WHERE ({' OR '.join(changed_predicates)})"
        )

    def build_delete_matched(
        self, target: str, staging: str, key_predicates: Sequence[str]
    ) -> str:
        dest_decl, _, src_decl, src = self.table_refs(target, staging)
        return (
            f"DELETE {src} FROM {src_decl} INNER JOIN {dest_decl} "
            f"ON {' AND '.join(key_predicates)}"
        )

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
        fields = f"FIELDS TERMINATED BY {self.quote_literal(csv.delimiter)}"
        if csv.enclosure:
            fields += f" OPTIONALLY ENCLOSED BY {self.quote_literal(csv.enclosure)}"
        fields += f" ESCAPED BY {self.quote_literal(csv.escape_char)}"
        columns_sql = ", ".join(
            c if c == self.discard_placeholder else self.quote_identifier(c)
            for c in columns
        )
        parts = [
            f"LOAD DATA LOCAL INFILE {self.quote_literal(location)}",
            f"INTO TABLE {table}",
            fields,
            f"LINES TERMINATED BY {self.quote_literal(csv.line_break)}",
            f"IGNORE {int(ignore_header_lines)} LINES",
            f"({columns_sql})",
        ]
        parts.extend(extra_options)
        return " ".join(parts)

    def columns_query(self, schema: Optional[str], table: str) -> Query:
        sql = """
            SELECT
                c.COLUMN_NAME AS column_name,
                c.COLUMN_TYPE AS column_type,
                c.IS_NULLABLE AS is_nullable,
                c.COLUMN_DEFAULT AS column_default,
                c.EXTRA AS extra
            FROM information_schema.COLUMNS AS c
            WHERE c.TABLE_SCHEMA = COALESCE(:schema, DATABASE())
              AND c.TABLE_NAME = :table
            ORDER BY c.ORDINAL_POSITION
        """
        return sql, {"schema": schema, "table": table}

    def raw_column(self, row: Mapping[str, Any]) -> RawColumn:
        return RawColumn(
            name=row["column_name"],
            data_type=row["column_type"],
            nullable=str(row["is_nullable"]).upper() == "YES",
            default_value=row["column_default"],
            is_identity="auto_increment" in (row["extra"] or "").lower(),
        )

    def primary_key_query(self, schema: Optional[str], table: str) -> Query:
        sql = """
            SELECT
                k.COLUMN_NAME AS column_name,
                k.ORDINAL_POSITION AS key_sequence
            FROM information_schema.KEY_COLUMN_USAGE AS k
            WHERE k.TABLE_SCHEMA = COALESCE(:schema, DATABASE())
              AND k.TABLE_NAME = :table
              AND k.CONSTRAINT_NAME = 'PRIMARY'
            ORDER BY k.ORDINAL_POSITION
        """
        return sql, {"schema": schema, "table": table}

    def table_info_query(self, schema: Optional[str], table: str) -> Query:
        sql = """
            SELECT
                t.TABLE_NAME AS name,
                t.TABLE_ROWS AS row_count,
                t.DATA_LENGTH AS byte_size
            FROM information_schema.TABLES AS t
            WHERE t.TABLE_SCHEMA = COALESCE(:schema, DATABASE())
              AND t.TABLE_NAME = :table
        """
        return sql, {"schema": schema, "table": table}
