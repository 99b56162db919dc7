"""
Driver error classification.

Backends report failures as generic driver exceptions. Each dialect carries a
short ordered table of ``MessageRule`` entries; the first rule whose pattern
matches the driver message decides the ``ImportErrorKind`` and the message of
the resulting ``DataImportError``.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Pattern, Tuple

from warehouse_import.exceptions import DataImportError, ImportErrorKind


@dataclass(frozen=True)
class MessageRule:
    """Regex rule mapping a raw driver message to an error kind.

    ``template`` is formatted with the regex groups listed in ``groups``; a
    rule without template keeps the raw driver message.
    """

    pattern: Pattern[str]
    kind: ImportErrorKind
    template: Optional[str] = None
    groups: Tuple[int, ...] = ()

    @classmethod
    def of(
        cls,
        pattern: str,
        kind: ImportErrorKind,
        template: Optional[str] = None,
        groups: Tuple[int, ...] = (),
    ) -> "MessageRule":
        return cls(re.compile(pattern, re.DOTALL), kind, template, groups)

    def apply(self, message: str) -> Optional[str]:
        """Return the transformed message if the rule matches, else None."""
        match = self.pattern.search(message)
        if match is None:
            return None
        if self.template is None:
            return message
        return self.template % tuple(match.group(i) for i in self.groups)


def driver_message(exc: BaseException) -> str:
    """Raw backend message of ``exc``, unwrapping SQLAlchemy's DBAPIError."""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return str(orig)
    return str(exc)


class ErrorClassifier:
    """Ordered, first-match-wins translation of driver errors."""

    def __init__(self, rules: Iterable[MessageRule] = ()):
        self.rules: Tuple[MessageRule, ...] = tuple(rules)

    def match(self, message: str) -> Optional[Tuple[ImportErrorKind, str]]:
        for rule in self.rules:
            transformed = rule.apply(message)
            if transformed is not None:
                return rule.kind, transformed
        return None

    def classify(
        self, exc: BaseException, sql: Optional[str] = None
    ) -> DataImportError:
        """
        Translate ``exc`` into a ``DataImportError``.

        Errors that are already classified pass through unchanged. Anything
        no rule recognizes becomes ``UnknownError`` with the original message
        and the failing SQL attached.
        """
        if isinstance(exc, DataImportError):
            return exc

        message = driver_message(exc)
        matched = self.match(message)
        if matched is None:
            return DataImportError(
                ImportErrorKind.UNKNOWN_ERROR, message, original_error=exc, sql=sql
            )
        kind, transformed = matched
        return DataImportError(kind, transformed, original_error=exc, sql=sql)
