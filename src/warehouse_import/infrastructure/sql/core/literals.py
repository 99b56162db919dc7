"""String literal quoting for values that end up inline in load statements."""


def quote_literal(value: str, backslash_escapes: bool = False) -> str:
    """
    Quote a value as a single-quoted SQL string literal.

    Single quotes are doubled. Backends that treat the backslash as an
    escape character inside literals (MySQL, Snowflake) also get it doubled.

    Examples:
        >>> quote_literal("it's")
        "'it''s'"
    """
    if backslash_escapes:
        value = value.replace("\\", "\\\\")
    return "'" + value.replace("'", "''") + "'"
