"""
Statement builders for moving rows between staging and target tables.

All table arguments are already quoted/qualified references; column names
are quoted here through the dialect.
"""

from typing import AbstractSet, List, Optional, Sequence, Tuple

from ..dialects.base import Dialect

TimestampValue = Optional[Tuple[str, str]]


class MergeBuilder:
    """
    Builds the INSERT/UPDATE/DELETE statements of the merge phases.

    Example:
        >>> from warehouse_import.infrastructure.sql import get_dialect
        >>> builder = MergeBuilder(get_dialect("snowflake"))
        >>> print(builder.insert_from_staging('"t"', '"s"', ["id"], frozenset(), None))
        INSERT INTO "t" ("id") SELECT COALESCE("id", '') FROM "s"
    """

    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    def _columns_sql(self, columns: Sequence[str], prefix: str = "") -> str:
        return ", ".join(f"{prefix}{self.dialect.quote_identifier(c)}" for c in columns)

    def insert_from_staging(
        self,
        target: str,
        staging: str,
        columns: Sequence[str],
        convert_empty_to_null: AbstractSet[str],
        timestamp: TimestampValue,
    ) -> str:
        """INSERT ... SELECT of every staging row, with optional timestamp literal."""
        q = self.dialect.quote_identifier
        insert_columns = list(columns)
        values = [
            self.dialect.source_value(q(c), c in convert_empty_to_null) for c in columns
        ]
        if timestamp is not None:
            insert_columns.append(timestamp[0])
            values.append(timestamp[1])
        return (
            f"INSERT INTO {target} ({self._columns_sql(insert_columns)}) "
            f"SELECT {', '.join(values)} FROM {staging}"
        )

    def _key_predicates(
        self, target: str, staging: str, primary_key: Sequence[str]
    ) -> List[str]:
        _, dest, _, src = self.dialect.table_refs(target, staging)
        q = self.dialect.quote_identifier
        return [self.dialect.key_match(f"{dest}.{q(k)}", f"{src}.{q(k)}") for k in primary_key]

    def update_changed(
        self,
        target: str,
        staging: str,
        columns: Sequence[str],
        primary_key: Sequence[str],
        convert_empty_to_null: AbstractSet[str],
        timestamp: TimestampValue,
    ) -> Optional[str]:
        """
        UPDATE target rows matched by primary key whose non-key values differ.

        Values are compared as text with NULL folded to ''; an empty staging
        value bound for NULL conversion therefore equals an existing NULL.
        Returns None when there is no non-key column to compare.
        """
        q = self.dialect.quote_identifier
        _, dest, _, src = self.dialect.table_refs(target, staging)
        keys = {k.lower() for k in primary_key}
        compared = [c for c in columns if c.lower() not in keys]
        if not compared:
            return None

        assignments = [
            (c, self.dialect.source_value(f"{src}.{q(c)}", c in convert_empty_to_null))
            for c in columns
        ]
        if timestamp is not None:
            assignments.append(timestamp)
        changed = [self.dialect.changed(f"{dest}.{q(c)}", f"{src}.{q(c)}") for c in compared]
        return self.dialect.build_update_changed(
            target,
            staging,
            assignments,
            self._key_predicates(target, staging, primary_key),
            changed,
        )

    def delete_matched(
        self, target: str, staging: str, primary_key: Sequence[str]
    ) -> str:
        """DELETE staging rows whose primary key already exists in target."""
        return self.dialect.build_delete_matched(
            target, staging, self._key_predicates(target, staging, primary_key)
        )

    def dedupe_insert(
        self,
        destination: str,
        source: str,
        columns: Sequence[str],
        primary_key: Sequence[str],
    ) -> str:
        """
        INSERT one row per primary key from ``source`` into ``destination``.

        Rows of a key partition are ordered by their non-key values (as text,
        descending) and then by the key, and ordinal 1 is kept. The surviving
        row depends on row content only.
        """
        q = self.dialect.quote_identifier
        keys = {k.lower() for k in primary_key}
        order = [
            f"COALESCE({self.dialect.cast_text(q(c))}, '') DESC"
            for c in columns
            if c.lower() not in keys
        ]
        order.extend(q(k) for k in primary_key)
        row_number = q(self.dialect.row_number_column)
        return (
            f"INSERT INTO {destination} ({self._columns_sql(columns)}) "
            f"SELECT {self._columns_sql(columns, 'a.')} FROM ("
            f"SELECT {self._columns_sql(columns)}, ROW_NUMBER() OVER ("
            f"PARTITION BY {self._columns_sql(primary_key)} "
            f"ORDER BY {', '.join(order)}) AS {row_number} "
            f"FROM {source}) AS a WHERE a.{row_number} = 1"
        )

    def copy_table(
        self,
        staging: str,
        source: str,
        columns: Sequence[str],
        source_columns: Sequence[str],
        boolean_columns: AbstractSet[str],
        convert_empty_to_null: AbstractSet[str],
    ) -> str:
        """
        Single INSERT ... SELECT from a source table into staging.

        ``source_columns`` are the source spellings of ``columns``, pairwise.
        """
        values = [
            self.dialect.copy_value(
                self.dialect.quote_identifier(source_column),
                column in boolean_columns,
                column in convert_empty_to_null,
            )
            for column, source_column in zip(columns, source_columns)
        ]
        return (
            f"INSERT INTO {staging} ({self._columns_sql(columns)}) "
            f"SELECT {', '.join(values)} FROM {source}"
        )
