"""
Unit tests for SQL core utilities: identifiers, literals and error rules.
"""

import pytest
from sqlalchemy.exc import OperationalError

from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.infrastructure.sql import (
    get_dialect,
    qualify_table,
    quote_identifier,
    quote_literal,
    strip_invalid_chars,
)
from warehouse_import.infrastructure.sql.core.errors import (
    ErrorClassifier,
    MessageRule,
    driver_message,
)


class TestQuoteIdentifier:
    """Tests for quote_identifier function."""

    def test_simple_identifier(self):
        """Simple identifier should be quoted."""
        assert quote_identifier("users") == '"users"'

    def test_identifier_with_spaces(self):
        """Identifier with spaces should be quoted."""
        assert quote_identifier("order id") == '"order id"'

    def test_embedded_quote_doubled(self):
        """Embedded quote characters are doubled."""
        assert quote_identifier('a"b') == '"a""b"'

    def test_backtick_quote_char(self):
        """MySQL style quoting doubles backticks."""
        assert quote_identifier("we`ird", quote_char="`") == "`we``ird`"

    def test_unicode_identifier(self):
        """Non-ASCII identifiers are kept as is."""
        assert quote_identifier("年金计划号") == '"年金计划号"'


class TestQualifyTable:
    """Tests for qualify_table function."""

    def test_without_schema(self):
        assert qualify_table("orders") == '"orders"'

    def test_with_schema(self):
        """Both schema and table are quoted."""
        assert qualify_table("orders", schema="sales") == '"sales"."orders"'

    def test_backticks(self):
        assert qualify_table("orders", "sales", quote_char="`") == "`sales`.`orders`"


class TestStripInvalidChars:
    def test_keeps_identifier_safe_characters(self):
        assert strip_invalid_chars("__temp_csvimport-1.a_B") == "__temp_csvimport-1.a_B"

    def test_removes_everything_else(self):
        assert strip_invalid_chars("tmp name#1;drop") == "tmpname1drop"


class TestQuoteLiteral:
    """Tests for quote_literal function."""

    def test_single_quotes_doubled(self):
        assert quote_literal("it's") == "'it''s'"

    def test_backslash_kept_without_escapes(self):
        assert quote_literal("\\") == "'\\'"

    def test_backslash_doubled_with_escapes(self):
        """Backends with backslash escapes need the backslash doubled."""
        assert quote_literal("\\", backslash_escapes=True) == "'\\\\'"

    def test_tab_delimiter(self):
        assert quote_literal("\t") == "'\t'"


class TestMessageRule:
    def test_rule_without_template_keeps_message(self):
        rule = MessageRule.of(r"timeout", ImportErrorKind.QUERY_TIMEOUT)
        assert rule.apply("statement timeout reached") == "statement timeout reached"

    def test_rule_with_template_formats_groups(self):
        rule = MessageRule.of(
            r"column '(\w+)' of table '(\w+)'",
            ImportErrorKind.STRING_TOO_LONG,
            "%s.%s",
            (2, 1),
        )
        assert rule.apply("column 'name' of table 't'") == "t.name"

    def test_no_match_returns_none(self):
        rule = MessageRule.of(r"timeout", ImportErrorKind.QUERY_TIMEOUT)
        assert rule.apply("syntax error") is None


class TestErrorClassifier:
    """Ordered, first-match-wins classification."""

    def test_first_matching_rule_wins(self):
        classifier = ErrorClassifier(
            [
                MessageRule.of(r"too long", ImportErrorKind.STRING_TOO_LONG),
                MessageRule.of(r"too", ImportErrorKind.DATA_TYPE_MISMATCH),
            ]
        )
        error = classifier.classify(RuntimeError("value too long"))
        assert error.kind == ImportErrorKind.STRING_TOO_LONG

    def test_unmatched_error_is_unknown_with_sql(self):
        """Unrecognized errors keep the message, cause and failing SQL."""
        cause = RuntimeError("something odd")
        error = ErrorClassifier([]).classify(cause, sql="SELECT 1")
        assert error.kind == ImportErrorKind.UNKNOWN_ERROR
        assert error.message == "something odd"
        assert error.original_error is cause
        assert error.sql == "SELECT 1"

    def test_classified_errors_pass_through(self):
        original = DataImportError(ImportErrorKind.NO_COLUMNS, "none")
        assert ErrorClassifier([]).classify(original) is original

    def test_driver_message_unwraps_sqlalchemy_error(self):
        exc = OperationalError("SELECT 1", {}, RuntimeError("raw driver text"))
        assert driver_message(exc) == "raw driver text"


class TestDialectErrorRules:
    """Each backend's pattern table maps its driver messages."""

    @pytest.mark.parametrize(
        "dialect_name, message, kind",
        [
            (
                "mysql",
                "(3024, 'Query execution was interrupted, maximum statement execution time exceeded')",
                ImportErrorKind.QUERY_TIMEOUT,
            ),
            ("mysql", "Table 'db.missing' doesn't exist", ImportErrorKind.TABLE_NOT_FOUND),
            (
                "mysql",
                "Data too long for column 'name' at row 1",
                ImportErrorKind.STRING_TOO_LONG,
            ),
            (
                "mysql",
                "Incorrect integer value: 'abc' for column 'id' at row 1",
                ImportErrorKind.DATA_TYPE_MISMATCH,
            ),
            (
                "redshift",
                "Mandatory url is not present in manifest file",
                ImportErrorKind.MANDATORY_FILE_NOT_FOUND,
            ),
            (
                "redshift",
                "canceling statement due to statement timeout",
                ImportErrorKind.QUERY_TIMEOUT,
            ),
            (
                "redshift",
                "Load into table 't' failed. Datatype mismatch",
                ImportErrorKind.DATA_TYPE_MISMATCH,
            ),
            (
                "redshift",
                'relation "public.t" does not exist',
                ImportErrorKind.TABLE_NOT_FOUND,
            ),
            (
                "snowflake",
                "String 'abcdef' is too long and would be truncated\n SQL state 22000",
                ImportErrorKind.STRING_TOO_LONG,
            ),
            (
                "snowflake",
                "Remote file 's3://bucket/a.csv' was not found",
                ImportErrorKind.MANDATORY_FILE_NOT_FOUND,
            ),
            (
                "snowflake",
                "Statement reached its statement or warehouse timeout of 10 second(s)",
                ImportErrorKind.QUERY_TIMEOUT,
            ),
            (
                "snowflake",
                "Numeric value 'x' is not recognized",
                ImportErrorKind.DATA_TYPE_MISMATCH,
            ),
        ],
    )
    def test_rule_table(self, dialect_name, message, kind):
        dialect = get_dialect(dialect_name)
        error = ErrorClassifier(dialect.error_rules).classify(RuntimeError(message))
        assert error.kind == kind

    def test_mysql_message_template(self):
        dialect = get_dialect("mysql")
        error = ErrorClassifier(dialect.error_rules).classify(
            RuntimeError("Data too long for column 'name' at row 1")
        )
        assert error.message == "Value for column 'name' is bigger than column size"
