"""
Connection adapter over a SQLAlchemy connection.

Gives the import engine one contract for every backend: ``execute``,
``fetch_all``, ``fetch_streaming``, ``transaction`` and ``disconnect``.
Statements run in autocommit mode unless they are issued inside
``transaction()``. Driver errors are translated into ``DataImportError``
through the dialect's error classifier.
"""

import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, CursorResult, Engine, make_url
from sqlalchemy.exc import DBAPIError, SQLAlchemyError

from warehouse_import.config import get_settings
from warehouse_import.exceptions import DataImportError
from warehouse_import.infrastructure.sql.core.errors import ErrorClassifier
from warehouse_import.infrastructure.sql.dialects import Dialect, get_dialect
from warehouse_import.utils.logging import get_logger

logger = get_logger(__name__)

Params = Optional[Mapping[str, Any]]
RowCallback = Callable[[Dict[str, Any]], None]

_STREAM_BUFFER_ROWS = 1000


class ConnectionAdapter:
    """Uniform query/fetch contract over one physical database connection."""

    def __init__(
        self,
        connection: Connection,
        dialect: Dialect,
        classifier: Optional[ErrorClassifier] = None,
        engine: Optional[Engine] = None,
    ):
        self._connection = connection
        self.dialect = dialect
        self.classifier = classifier or ErrorClassifier(dialect.error_rules)
        self._engine = engine
        self._transaction = None

    def quote_identifier(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    @property
    def in_transaction(self) -> bool:
        return self._transaction is not None

    def _run(self, sql: str, params: Params, stream: bool = False) -> CursorResult:
        masked = self.dialect.mask_credentials(sql)
        logger.debug("sql.execute", sql=masked, stream=stream)
        options: Dict[str, Any] = {}
        if stream:
            options.update(stream_results=True, max_row_buffer=_STREAM_BUFFER_ROWS)
        try:
            if params:
                return self._connection.execute(
                    text(sql), dict(params), execution_options=options
                )
            options["no_parameters"] = True
            return self._connection.exec_driver_sql(sql, execution_options=options)
        except SQLAlchemyError as exc:
            self._abandon()
            raise self.classifier.classify(exc, sql=masked) from exc

    def _abandon(self) -> None:
        """Roll back a failed autocommit statement; transactions roll back themselves."""
        if self._transaction is None and self._connection.in_transaction():
            self._connection.rollback()

    def _autocommit(self) -> None:
        if self._transaction is None and self._connection.in_transaction():
            self._connection.commit()

    def execute(self, sql: str, params: Params = None) -> int:
        """Run a statement and return the driver-reported affected row count."""
        result = self._run(sql, params)
        rowcount = result.rowcount
        result.close()
        self._autocommit()
        return rowcount

    def fetch_all(self, sql: str, params: Params = None) -> List[Dict[str, Any]]:
        """Run a query and materialize every row as a dict."""
        result = self._run(sql, params)
        try:
            rows = [dict(row) for row in result.mappings()]
        except SQLAlchemyError as exc:
            self._abandon()
            raise self.classifier.classify(
                exc, sql=self.dialect.mask_credentials(sql)
            ) from exc
        self._autocommit()
        return rows

    def fetch_streaming(
        self, sql: str, params: Params, row_callback: RowCallback
    ) -> int:
        """
        Run a query and hand each row to ``row_callback`` as it arrives.

        Uses a server-side cursor, so memory stays bounded by the driver's
        row buffer regardless of result size. Returns the number of rows.
        """
        result = self._run(sql, params, stream=True)
        count = 0
        try:
            for row in result.mappings():
                row_callback(dict(row))
                count += 1
        except SQLAlchemyError as exc:
            self._abandon()
            raise self.classifier.classify(
                exc, sql=self.dialect.mask_credentials(sql)
            ) from exc
        except Exception:
            self._abandon()
            raise
        finally:
            result.close()
        self._autocommit()
        return count

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """
        Wrap statements in BEGIN/COMMIT; roll back and re-raise on error.

        Nested calls join the outer transaction.
        """
        if self._transaction is not None:
            yield
            return

        self._autocommit()
        self._transaction = self._connection.begin()
        try:
            yield
        except Exception:
            try:
                self._transaction.rollback()
            except SQLAlchemyError as rollback_error:
                logger.warning(
                    "transaction.rollback_failed", error=str(rollback_error)
                )
            raise
        else:
            try:
                self._transaction.commit()
            except SQLAlchemyError as exc:
                raise self.classifier.classify(exc, sql="COMMIT") from exc
        finally:
            self._transaction = None

    def set_statement_timeout(self, seconds: int) -> None:
        """Apply a backend-enforced statement timeout to this session."""
        sql = self.dialect.build_statement_timeout(seconds)
        if sql is None:
            logger.warning("connection.statement_timeout_unsupported", dialect=self.dialect.name)
            return
        self.execute(sql)
        logger.info("connection.statement_timeout_set", seconds=seconds)

    def disconnect(self) -> None:
        """Close the connection; an open transaction is rolled back by the driver."""
        self._transaction = None
        self._connection.close()
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        logger.info("connection.closed", dialect=self.dialect.name)

    def __enter__(self) -> "ConnectionAdapter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()


def connect(
    url: Optional[str] = None,
    dialect_name: Optional[str] = None,
    statement_timeout: Optional[int] = None,
    max_retries: Optional[int] = None,
    retry_backoff_base: Optional[float] = None,
) -> ConnectionAdapter:
    """
    Open a ``ConnectionAdapter`` for ``url``.

    The dialect is inferred from the URL's backend unless ``dialect_name`` is
    given. Failures while connecting are retried with exponential backoff
    (``retry_backoff_base ** attempt`` seconds); statements never are.

    Args:
        url: SQLAlchemy URL; defaults to ``WHI_DATABASE_URL``
        dialect_name: mysql, redshift or snowflake
        statement_timeout: seconds; defaults to ``WHI_STATEMENT_TIMEOUT_SECONDS``
        max_retries: connection attempts; defaults to settings
        retry_backoff_base: backoff base in seconds; defaults to settings
    """
    settings = get_settings()
    url = url or settings.database_url
    if not url:
        raise ValueError("A database URL is required (argument or WHI_DATABASE_URL)")
    max_retries = max_retries or settings.connect_max_retries
    if retry_backoff_base is None:
        retry_backoff_base = settings.connect_retry_backoff_base
    if statement_timeout is None:
        statement_timeout = settings.statement_timeout_seconds

    dialect = get_dialect(dialect_name or make_url(url).get_backend_name())
    engine = create_engine(url, connect_args=dict(dialect.connect_args))
    classifier = ErrorClassifier(dialect.error_rules)

    last_error: Optional[DBAPIError] = None
    connection = None
    for attempt in range(1, max_retries + 1):
        try:
            connection = engine.connect()
            break
        except DBAPIError as exc:
            last_error = exc
            logger.warning(
                "connection.attempt_failed",
                dialect=dialect.name,
                attempt=attempt,
                max_retries=max_retries,
                error=str(exc.orig),
            )
            if attempt < max_retries:
                time.sleep(retry_backoff_base**attempt)

    if connection is None:
        engine.dispose()
        error: DataImportError = classifier.classify(last_error)
        raise error from last_error

    logger.info("connection.established", dialect=dialect.name)
    adapter = ConnectionAdapter(connection, dialect, classifier, engine=engine)
    if statement_timeout:
        adapter.set_statement_timeout(statement_timeout)
    return adapter
