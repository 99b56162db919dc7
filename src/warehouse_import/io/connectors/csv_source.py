"""Delimited file descriptor used as an import source."""

import csv
import gzip
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import IO, Iterator, List
from urllib.parse import urlparse

from warehouse_import.exceptions import DataImportError, ImportErrorKind

REMOTE_SCHEMES = ("s3", "http", "https")
GZIP_SUFFIXES = (".gz", ".gzip")


@dataclass(frozen=True)
class CsvSource:
    """
    A delimited file, local or remote, plus its dialect settings.

    ``enclosure`` and ``escape_char`` are mutually exclusive; pass an empty
    string to disable one of them. Iterating yields each record as a list of
    fields, from the first line on, and can be repeated.
    """

    path: str
    delimiter: str = ","
    enclosure: str = '"'
    escape_char: str = ""
    line_break: str = "\n"

    @property
    def is_remote(self) -> bool:
        return urlparse(self.path).scheme in REMOTE_SCHEMES

    @property
    def basename(self) -> str:
        if self.is_remote:
            return PurePosixPath(urlparse(self.path).path).name
        return PurePosixPath(self.path.replace("\\", "/")).name

    @property
    def is_gzipped(self) -> bool:
        return self.basename.lower().endswith(GZIP_SUFFIXES)

    def validate(self) -> None:
        """Raise ``InvalidCsvParams`` for settings no backend can load."""
        if self.enclosure and self.escape_char:
            raise DataImportError(
                ImportErrorKind.INVALID_CSV_PARAMS,
                "Invalid CSV params. Either enclosure or escape character "
                "must be specified but not both.",
            )
        if len(self.delimiter) != 1:
            raise DataImportError(
                ImportErrorKind.INVALID_CSV_PARAMS,
                f"Delimiter must be a single character, got {self.delimiter!r}",
            )
        if len(self.enclosure) > 1 or len(self.escape_char) > 1:
            raise DataImportError(
                ImportErrorKind.INVALID_CSV_PARAMS,
                "Enclosure and escape character must be single characters",
            )

    def _open(self) -> IO[str]:
        if self.is_remote:
            raise ValueError(f"Cannot iterate remote file {self.path}; download it first")
        if self.is_gzipped:
            return gzip.open(self.path, "rt", encoding="utf-8", newline="")
        return open(self.path, "r", encoding="utf-8", newline="")

    def __iter__(self) -> Iterator[List[str]]:
        with self._open() as handle:
            reader = csv.reader(
                handle,
                delimiter=self.delimiter,
                quotechar=self.enclosure or None,
                escapechar=self.escape_char or None,
                quoting=csv.QUOTE_MINIMAL if self.enclosure else csv.QUOTE_NONE,
            )
            for row in reader:
                yield row

    def header(self) -> List[str]:
        """First record of the file, or an empty list for an empty file."""
        for row in self:
            return row
        return []
