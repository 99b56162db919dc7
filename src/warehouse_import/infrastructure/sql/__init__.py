"""
SQL infrastructure for the import engine.

- core: identifier/literal quoting and driver error classification
- dialects: per-backend capability sets (MySQL, Redshift, Snowflake)
- operations: statement builders for merge, dedupe and staging copies
"""

from .core.identifier import qualify_table, quote_identifier, strip_invalid_chars
from .core.literals import quote_literal
from .dialects import Dialect, get_dialect

__all__ = [
    "Dialect",
    "get_dialect",
    "qualify_table",
    "quote_identifier",
    "quote_literal",
    "strip_invalid_chars",
]
