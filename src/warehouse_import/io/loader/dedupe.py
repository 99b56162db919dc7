"""Primary-key deduplication of a staging table."""

from typing import Sequence

from warehouse_import.infrastructure.sql.operations import MergeBuilder
from warehouse_import.io.connectors.connection import ConnectionAdapter
from warehouse_import.utils.logging import get_logger

from .staging import StagingTableManager

logger = get_logger(__name__)


class DedupeEngine:
    """
    Reduces a staging table to one row per primary key.

    Surviving rows are written into a fresh sibling staging table, which then
    takes over the original name, so callers keep using the same staging
    table name afterwards.
    """

    def __init__(
        self,
        connection: ConnectionAdapter,
        staging: StagingTableManager,
        builder: MergeBuilder,
    ):
        self.connection = connection
        self.staging = staging
        self.builder = builder

    def dedupe(
        self, table: str, columns: Sequence[str], primary_key: Sequence[str]
    ) -> None:
        if not primary_key:
            return

        sibling = self.staging.create_staging_table(
            columns, like=self.staging.qualified(table), primary_key=primary_key
        )
        try:
            self.connection.execute(
                self.builder.dedupe_insert(
                    self.staging.qualified(sibling),
                    self.staging.qualified(table),
                    columns,
                    primary_key,
                )
            )
            self.staging.swap_into(sibling, table, columns)
        except Exception:
            self.staging.drop_quietly(sibling)
            raise
        logger.debug("staging.deduplicated", staging=table, primary_key=list(primary_key))
