"""
SQL identifier handling utilities.

Identifiers cannot be bound as query parameters on any of the supported
backends, so every table and column name is inlined through these helpers.
"""

import re
from typing import Optional

_INVALID_TABLE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")


def quote_identifier(name: str, quote_char: str = '"') -> str:
    """
    Quote a SQL identifier (table or column name).

    Embedded quote characters are doubled.

    Examples:
        >>> quote_identifier("order id")
        '"order id"'
        >>> quote_identifier('a"b')
        '"a""b"'
        >>> quote_identifier("table", quote_char="`")
        '`table`'
    """
    escaped = name.replace(quote_char, quote_char * 2)
    return f"{quote_char}{escaped}{quote_char}"


def qualify_table(
    table: str, schema: Optional[str] = None, quote_char: str = '"'
) -> str:
    """
    Create a fully qualified table name with optional schema prefix.

    Examples:
        >>> qualify_table("orders", schema="sales")
        '"sales"."orders"'
        >>> qualify_table("orders")
        '"orders"'
    """
    quoted_table = quote_identifier(table, quote_char)
    if schema:
        return f"{quote_identifier(schema, quote_char)}.{quoted_table}"
    return quoted_table


def strip_invalid_chars(name: str) -> str:
    """
    Remove characters that are not safe in generated table names.

    Examples:
        >>> strip_invalid_chars("__temp_csvimport 5f2a.1b#")
        '__temp_csvimport5f2a.1b'
    """
    return _INVALID_TABLE_NAME_CHARS.sub("", name)
