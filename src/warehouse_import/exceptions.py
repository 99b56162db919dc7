"""Import error taxonomy.

Every failure raised by the import engine is a ``DataImportError`` whose
``kind`` is one of the flat ``ImportErrorKind`` values. Callers branch on the
kind, not on the exception class.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ImportErrorKind(str, Enum):
    """Flat classification of import failures."""

    NO_COLUMNS = "NoColumns"
    TABLE_NOT_FOUND = "TableNotFound"
    COLUMN_MISMATCH = "ColumnMismatch"
    DUPLICATE_COLUMN_NAMES = "DuplicateColumnNames"
    MANDATORY_FILE_NOT_FOUND = "MandatoryFileNotFound"
    INVALID_SOURCE_DATA = "InvalidSourceData"
    DATA_TYPE_MISMATCH = "DataTypeMismatch"
    INVALID_CSV_PARAMS = "InvalidCsvParams"
    STRING_TOO_LONG = "StringTooLong"
    QUERY_TIMEOUT = "QueryTimeout"
    UNKNOWN_ERROR = "UnknownError"


class DataImportError(Exception):
    """Structured import failure carrying its kind and diagnostic context."""

    def __init__(
        self,
        kind: ImportErrorKind,
        message: str,
        original_error: Optional[BaseException] = None,
        sql: Optional[str] = None,
    ):
        self.kind = ImportErrorKind(kind)
        self.message = message
        self.original_error = original_error
        self.sql = sql
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.kind.value}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to structured dict for logging."""
        payload: Dict[str, Any] = {
            "error_type": "DataImportError",
            "kind": self.kind.value,
            "message": self.message,
        }
        if self.sql is not None:
            payload["sql"] = self.sql
        if self.original_error is not None:
            payload["original_error_type"] = type(self.original_error).__name__
            payload["original_error_message"] = str(self.original_error)
        return payload
