"""
Merge of a loaded staging table into its target.

Full replace: dedupe staging, then truncate the target and insert every
staging row. Incremental: update changed rows matched by primary key, drop
them from staging, dedupe what is left and insert it as new rows. Both
write sequences run in one transaction.
"""

from datetime import datetime, timezone
from typing import AbstractSet, Optional, Sequence, Tuple

from warehouse_import.infrastructure.sql.operations import MergeBuilder
from warehouse_import.io.connectors.connection import ConnectionAdapter
from warehouse_import.utils.logging import get_logger

from .dedupe import DedupeEngine
from .result import ResultBuilder
from .staging import StagingTableManager

logger = get_logger(__name__)


class MergeEngine:
    """Moves deduplicated staging rows into the target table."""

    def __init__(
        self,
        connection: ConnectionAdapter,
        staging: StagingTableManager,
        dedupe: DedupeEngine,
        builder: MergeBuilder,
        timestamp_column: str,
    ):
        self.connection = connection
        self.dialect = connection.dialect
        self.staging = staging
        self.dedupe = dedupe
        self.builder = builder
        self.timestamp_column = timestamp_column

    def timestamp_value(
        self, columns: Sequence[str], use_timestamp: bool
    ) -> Optional[Tuple[str, str]]:
        """(column, literal) to write, or None when the column is not maintained."""
        if not use_timestamp:
            return None
        if self.timestamp_column.lower() in {c.lower() for c in columns}:
            return None
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        return self.timestamp_column, self.dialect.timestamp_literal(now)

    def full_replace(
        self,
        target: str,
        staging: str,
        columns: Sequence[str],
        primary_key: Sequence[str],
        convert_empty_to_null: AbstractSet[str],
        use_timestamp: bool,
        result: ResultBuilder,
    ) -> None:
        target_ref = self.dialect.qualify(target, self.staging.schema)
        staging_ref = self.staging.qualified(staging)

        with result.timer("dedup"):
            self.dedupe.dedupe(staging, columns, primary_key)

        timestamp = self.timestamp_value(columns, use_timestamp)
        with self.connection.transaction():
            self.connection.execute(self.dialect.build_truncate(target_ref))
            with result.timer("copy_from_staging_to_target"):
                self.connection.execute(
                    self.builder.insert_from_staging(
                        target_ref, staging_ref, columns, convert_empty_to_null, timestamp
                    )
                )
        logger.info("merge.full_replace.completed", table=target)

    def upsert(
        self,
        target: str,
        staging: str,
        columns: Sequence[str],
        primary_key: Sequence[str],
        convert_empty_to_null: AbstractSet[str],
        use_timestamp: bool,
        result: ResultBuilder,
    ) -> None:
        target_ref = self.dialect.qualify(target, self.staging.schema)
        staging_ref = self.staging.qualified(staging)
        timestamp = self.timestamp_value(columns, use_timestamp)

        with self.connection.transaction():
            if primary_key:
                with result.timer("update_target_table"):
                    update_sql = self.builder.update_changed(
                        target_ref,
                        staging_ref,
                        columns,
                        primary_key,
                        convert_empty_to_null,
                        timestamp,
                    )
                    updated = self.connection.execute(update_sql) if update_sql else 0

                with result.timer("delete_updated_rows_from_staging"):
                    self.connection.execute(
                        self.builder.delete_matched(target_ref, staging_ref, primary_key)
                    )

                # Snowflake DDL in the dedupe commits the update and delete above
                with result.timer("dedup_staging"):
                    self.dedupe.dedupe(staging, columns, primary_key)
            else:
                updated = 0

            with result.timer("insert_into_target_from_staging"):
                inserted = self.connection.execute(
                    self.builder.insert_from_staging(
                        target_ref, staging_ref, columns, convert_empty_to_null, timestamp
                    )
                )
        logger.info(
            "merge.upsert.completed", table=target, updated=updated, inserted=inserted
        )
