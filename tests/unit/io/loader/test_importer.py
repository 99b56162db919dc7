"""
Unit tests for StagingImporter.import_table against recorded fake connections.
"""

import re

import pytest

from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.io.connectors import CsvSource
from warehouse_import.io.loader import (
    DelimitedFile,
    DelimitedFileSet,
    ImportOptions,
    StagingImporter,
)

STAGING_NAME = re.compile(r"CREATE TEMPORARY TABLE [`\"]([^`\"]+)[`\"]")


def _mysql_target(connection, with_timestamp=False):
    columns = [
        {"column_name": "id", "column_type": "int(11)", "is_nullable": "NO",
         "column_default": None, "extra": ""},
        {"column_name": "name", "column_type": "varchar(50)", "is_nullable": "YES",
         "column_default": None, "extra": ""},
    ]
    if with_timestamp:
        columns.append(
            {"column_name": "_timestamp", "column_type": "timestamp", "is_nullable": "YES",
             "column_default": None, "extra": ""}
        )
    connection.responses["information_schema.COLUMNS"] = columns
    connection.responses["information_schema.KEY_COLUMN_USAGE"] = [
        {"column_name": "id", "key_sequence": 1}
    ]
    return connection


def _staging_name(connection):
    for sql in connection.statements:
        match = STAGING_NAME.match(sql)
        if match:
            return match.group(1)
    return None


def _source(path="/data/accounts.csv", **kwargs):
    return DelimitedFile(CsvSource(path, **kwargs))


@pytest.fixture
def mysql_target(fake_mysql):
    return _mysql_target(fake_mysql, with_timestamp=True)


@pytest.fixture
def importer(mysql_target, blob_fetcher):
    return StagingImporter(mysql_target, schema="db", blob_fetcher=blob_fetcher)


class TestValidation:
    """Request validation happens before any statement reaches the backend."""

    def test_duplicate_columns_case_insensitive(self, importer, mysql_target):
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", ["id", "name", "ID"], _source())
        assert excinfo.value.kind == ImportErrorKind.DUPLICATE_COLUMN_NAMES
        assert "ID" in excinfo.value.message
        assert mysql_target.statements == []

    def test_no_columns(self, importer, mysql_target):
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", [], _source())
        assert excinfo.value.kind == ImportErrorKind.NO_COLUMNS
        assert mysql_target.statements == []

    def test_enclosure_and_escape_rejected(self, importer, mysql_target):
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table(
                "t", ["id"], _source(enclosure='"', escape_char="\\")
            )
        assert excinfo.value.kind == ImportErrorKind.INVALID_CSV_PARAMS
        assert mysql_target.statements == []

    def test_every_file_of_a_set_validated(self, importer, mysql_target):
        files = (CsvSource("/data/1.csv"), CsvSource("/data/2.csv", delimiter=";;"))
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", ["id"], DelimitedFileSet(files))
        assert excinfo.value.kind == ImportErrorKind.INVALID_CSV_PARAMS
        assert mysql_target.statements == []

    def test_backend_escape_restriction(self, fake_redshift):
        with pytest.raises(DataImportError) as excinfo:
            StagingImporter(fake_redshift).import_table(
                "t", ["id"], _source("s3://b/a.csv", enclosure="", escape_char="|")
            )
        assert excinfo.value.kind == ImportErrorKind.INVALID_CSV_PARAMS
        assert fake_redshift.statements == []

    def test_missing_table(self, fake_mysql, blob_fetcher):
        with pytest.raises(DataImportError) as excinfo:
            StagingImporter(fake_mysql, schema="db").import_table("nope", ["id"], _source())
        assert excinfo.value.kind == ImportErrorKind.TABLE_NOT_FOUND
        assert _staging_name(fake_mysql) is None


class TestColumnResolution:
    def test_mismatch_lists_missing_columns(self, importer, mysql_target):
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", ["id", "foo", "bar"], _source())
        assert excinfo.value.kind == ImportErrorKind.COLUMN_MISMATCH
        assert excinfo.value.message == "Columns foo, bar not found in table 't'"
        assert _staging_name(mysql_target) is None

    def test_case_insensitive_match_uses_target_spelling(self, importer):
        result = importer.import_table("t", ["ID", "Name"], _source())
        assert result.imported_columns == ("id", "name")

    def test_skip_columns_check_discards_unknown(self, importer, mysql_target):
        result = importer.import_table(
            "t",
            ["id", "extra", "name"],
            _source(),
            ImportOptions(skip_columns_check=True),
        )
        assert result.imported_columns == ("id", "name")
        load = mysql_target.matching("LOAD DATA")[0]
        assert load.endswith("(`id`, @dummy, `name`)")
        staging = mysql_target.matching("CREATE TEMPORARY TABLE")[0]
        assert "extra" not in staging

    def test_skip_columns_check_with_nothing_left(self, importer):
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table(
                "t", ["foo"], _source(), ImportOptions(skip_columns_check=True)
            )
        assert excinfo.value.kind == ImportErrorKind.COLUMN_MISMATCH

    def test_discarded_column_kept_positionally_without_placeholder(self, fake_snowflake):
        fake_snowflake.responses["DESC TABLE"] = [
            {"name": "ID", "type": "NUMBER(38,0)", "null?": "N", "default": None},
            {"name": "_timestamp", "type": "TIMESTAMP_NTZ(9)", "null?": "Y", "default": None},
        ]
        result = StagingImporter(fake_snowflake, schema="S").import_table(
            "T",
            ["skip_me", "id"],
            _source("s3://bucket/a.csv"),
            ImportOptions(skip_columns_check=True),
        )
        staging = fake_snowflake.matching("CREATE TEMPORARY TABLE")[0]
        assert staging.endswith('("_discarded_0_" VARCHAR, "ID" VARCHAR)')
        insert = fake_snowflake.matching('INSERT INTO "S"."T"')[0]
        assert "_discarded_0_" not in insert
        assert result.imported_columns == ("ID",)


class TestImportFlow:
    def test_full_replace(self, importer, mysql_target):
        result = importer.import_table("t", ["id", "name"], _source())

        staging = _staging_name(mysql_target)
        statements = mysql_target.statements
        assert statements.index(f"CREATE TEMPORARY TABLE `{staging}` (`id` TEXT, `name` TEXT)") < (
            statements.index("DELETE FROM `db`.`t`")
        )
        assert mysql_target.matching("LOAD DATA LOCAL INFILE '/data/accounts.csv'")
        assert statements[-1] == f"DROP TEMPORARY TABLE IF EXISTS `{staging}`"
        assert not mysql_target.matching("UPDATE")
        assert result.imported_rows_count == 1
        assert [t.name for t in result.timers] == [
            "copy_to_staging.accounts.csv",
            "copy_to_staging",
            "dedup",
            "copy_from_staging_to_target",
        ]

    def test_incremental(self, importer, mysql_target):
        result = importer.import_table(
            "t", ["id", "name"], [_source()], ImportOptions(incremental=True)
        )
        assert mysql_target.matching("UPDATE `db`.`t` AS `dest` INNER JOIN")
        assert not mysql_target.matching("DELETE FROM `db`.`t`")
        assert "update_target_table" in [t.name for t in result.timers]

    def test_sources_loaded_in_order(self, importer, mysql_target):
        importer.import_table(
            "t", ["id", "name"], [_source("/data/1.csv"), _source("/data/2.csv")]
        )
        loads = mysql_target.matching("LOAD DATA")
        assert "'/data/1.csv'" in loads[0]
        assert "'/data/2.csv'" in loads[1]

    def test_timestamp_column_added_when_missing(self, fake_mysql, blob_fetcher):
        _mysql_target(fake_mysql)
        StagingImporter(fake_mysql, schema="db", blob_fetcher=blob_fetcher).import_table(
            "t", ["id", "name"], _source()
        )
        alter = "ALTER TABLE `db`.`t` ADD COLUMN `_timestamp` TIMESTAMP NULL"
        assert fake_mysql.statements.index(alter) < fake_mysql.statements.index(
            fake_mysql.matching("CREATE TEMPORARY TABLE")[0]
        )

    def test_timestamp_column_not_added_when_disabled(self, fake_mysql, blob_fetcher):
        _mysql_target(fake_mysql)
        StagingImporter(fake_mysql, schema="db", blob_fetcher=blob_fetcher).import_table(
            "t", ["id", "name"], _source(), ImportOptions(use_timestamp_column=False)
        )
        assert not fake_mysql.matching("ADD COLUMN")
        assert "_timestamp" not in fake_mysql.matching("INSERT INTO `db`.`t`")[0]

    def test_convert_empty_to_null_matched_case_insensitively(self, importer, mysql_target):
        importer.import_table(
            "t",
            ["id", "name"],
            _source(),
            ImportOptions(convert_empty_to_null=frozenset({"NAME"})),
        )
        insert = mysql_target.matching("INSERT INTO `db`.`t`")[0]
        assert "CASE WHEN CAST(`name` AS CHAR) = '' THEN NULL ELSE `name` END" in insert


class TestCleanup:
    def test_staging_dropped_and_error_preserved(self, importer, mysql_target):
        mysql_target.failures["LOAD DATA"] = DataImportError(
            ImportErrorKind.STRING_TOO_LONG, "Value for column 'name' is bigger than column size"
        )
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", ["id", "name"], _source())
        assert excinfo.value.kind == ImportErrorKind.STRING_TOO_LONG
        staging = _staging_name(mysql_target)
        assert mysql_target.statements[-1] == f"DROP TEMPORARY TABLE IF EXISTS `{staging}`"

    def test_failing_drop_does_not_mask_error(self, importer, mysql_target):
        mysql_target.failures["LOAD DATA"] = DataImportError(
            ImportErrorKind.DATA_TYPE_MISMATCH, "Value 'x' does not match type of column 'id'"
        )
        mysql_target.failures["DROP"] = DataImportError(
            ImportErrorKind.UNKNOWN_ERROR, "connection lost"
        )
        with pytest.raises(DataImportError) as excinfo:
            importer.import_table("t", ["id", "name"], _source())
        assert excinfo.value.kind == ImportErrorKind.DATA_TYPE_MISMATCH

    def test_importer_reusable_after_failure(self, importer, mysql_target):
        mysql_target.failures["LOAD DATA"] = DataImportError(ImportErrorKind.QUERY_TIMEOUT, "slow")
        with pytest.raises(DataImportError):
            importer.import_table("t", ["id", "name"], _source())
        del mysql_target.failures["LOAD DATA"]
        first = _staging_name(mysql_target)

        mysql_target.statements.clear()
        result = importer.import_table("t", ["id", "name"], _source())
        assert _staging_name(mysql_target) != first
        assert result.imported_rows_count == 1
        assert result.warnings == {}


class TestResultIsolation:
    def test_each_import_gets_its_own_result(self, importer, mysql_target):
        mysql_target.responses["SHOW WARNINGS"] = [{"Level": "Note", "Code": 1, "Message": "m"}]
        first = importer.import_table("t", ["id", "name"], _source("/data/a.csv"))
        second = importer.import_table("t", ["id", "name"], _source("/data/b.csv"))
        assert list(first.warnings) == ["a.csv"]
        assert list(second.warnings) == ["b.csv"]
        assert first.imported_rows_count == second.imported_rows_count == 1

    def test_staging_dropped_when_clone_fails_partway(self, fake_redshift, blob_fetcher):
        fake_redshift.responses["FROM pg_attribute"] = [
            {"column_name": "id", "column_type": "integer", "not_null": True, "column_default": None},
            {"column_name": "_timestamp", "column_type": "timestamp without time zone",
             "not_null": False, "column_default": None},
        ]
        fake_redshift.responses["FROM pg_constraint"] = [
            {"column_name": "id", "position": 1, "conkey": "1"}
        ]
        fake_redshift.failures["ALTER TABLE"] = DataImportError(
            ImportErrorKind.UNKNOWN_ERROR, "permission denied"
        )
        with pytest.raises(DataImportError) as excinfo:
            StagingImporter(fake_redshift, schema="public", blob_fetcher=blob_fetcher).import_table(
                "t", ["id"], _source("s3://bucket/a.csv")
            )
        assert excinfo.value.message == "permission denied"
        staging = _staging_name(fake_redshift)
        assert fake_redshift.statements[-1] == f'DROP TABLE IF EXISTS "{staging}"'
