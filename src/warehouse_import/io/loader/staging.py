"""
Staging table lifecycle: naming, creation, swap and drop.

Names combine the configured prefix, a nanosecond timestamp and a random
UUID, so concurrent imports (and the nested table of a dedupe) never share
a staging table.
"""

import time
import uuid
from typing import Optional, Sequence

from warehouse_import.config import get_settings
from warehouse_import.exceptions import DataImportError
from warehouse_import.infrastructure.sql import strip_invalid_chars
from warehouse_import.infrastructure.sql.dialects.base import STAGING_CLONE
from warehouse_import.io.connectors.connection import ConnectionAdapter
from warehouse_import.utils.logging import get_logger

logger = get_logger(__name__)


class StagingTableManager:
    """Creates and destroys the staging tables of one connection."""

    def __init__(
        self,
        connection: ConnectionAdapter,
        schema: Optional[str] = None,
        prefix: Optional[str] = None,
    ):
        self.connection = connection
        self.dialect = connection.dialect
        self.schema = schema
        self.prefix = prefix if prefix is not None else get_settings().staging_table_prefix

    def generate_name(self) -> str:
        return strip_invalid_chars(
            f"{self.prefix}{time.time_ns():x}_{uuid.uuid4().hex}"
        )

    def qualified(self, name: str) -> str:
        return self.dialect.qualify_staging(name, self.schema)

    def create_staging_table(
        self,
        columns: Sequence[str],
        like: Optional[str] = None,
        primary_key: Sequence[str] = (),
        extra_columns: Sequence[str] = (),
    ) -> str:
        """
        Create a new staging table and return its (unqualified) name.

        Clone-shaped dialects copy ``like`` (a qualified table reference) and
        re-add ``primary_key``, plus one text column per ``extra_columns``
        entry for loaded values that are discarded before the merge. The
        others create one text column per entry of ``columns``, in order.
        """
        name = self.generate_name()
        table = self.qualified(name)
        if self.dialect.staging_shape == STAGING_CLONE and like is not None:
            statements = self.dialect.build_clone_table(table, like, primary_key)
            statements.extend(
                self.dialect.build_add_column(table, column, self.dialect.text_type)
                for column in extra_columns
            )
        else:
            statements = [self.dialect.build_create_text_table(table, columns)]
        first, *rest = statements
        self.connection.execute(first)
        try:
            for sql in rest:
                self.connection.execute(sql)
        except Exception:
            # the table exists but its name never reaches the caller
            self.drop_quietly(name)
            raise
        logger.info("staging.created", staging=name, shape=self.dialect.staging_shape)
        return name

    def drop_table(self, name: str) -> None:
        self.connection.execute(
            self.dialect.build_drop_table(
                self.qualified(name), temporary=self.dialect.temporary_staging
            )
        )
        logger.debug("staging.dropped", staging=name)

    def drop_quietly(self, name: str) -> None:
        """Drop during cleanup of a failed import; failures are only logged."""
        try:
            self.drop_table(name)
        except DataImportError as exc:
            logger.warning("staging.drop_failed", staging=name, **exc.to_dict())

    def swap_into(self, source: str, target: str, columns: Sequence[str]) -> None:
        """
        Replace staging table ``target`` with ``source`` under ``target``'s name.

        Runs inside a transaction where the backend's DDL is transactional.
        """
        statements = self.dialect.build_swap(
            self.qualified(source),
            self.qualified(target),
            target,
            self.schema,
            columns,
        )
        if self.dialect.supports_atomic_rename:
            with self.connection.transaction():
                for sql in statements:
                    self.connection.execute(sql)
        else:
            for sql in statements:
                self.connection.execute(sql)
        logger.debug("staging.swapped", source=source, target=target)

    def ensure_timestamp_column(
        self, target: str, column: str, existing_columns: Sequence[str]
    ) -> bool:
        """Add the reserved timestamp column to ``target`` when it is missing."""
        if column.lower() in {c.lower() for c in existing_columns}:
            return False
        self.connection.execute(
            self.dialect.build_add_column(
                self.dialect.qualify(target, self.schema),
                column,
                self.dialect.timestamp_type,
            )
        )
        logger.info("target.timestamp_column_added", table=target, column=column)
        return True
