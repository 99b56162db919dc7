"""
Unit tests for HttpBlobFetcher and manifest parsing.

The requests session is mocked; no network access happens.
"""

from unittest.mock import MagicMock

import pytest
import requests

from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.io.connectors import HttpBlobFetcher, load_manifest


def _response(status_code=200, content=b"", chunks=()):
    response = MagicMock()
    response.status_code = status_code
    response.content = content
    response.iter_content.return_value = list(chunks)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def fetcher(session):
    return HttpBlobFetcher(timeout=5, region="eu-west-1", session=session)


class TestResolveUrl:
    def test_s3_with_region(self, fetcher):
        assert fetcher.resolve_url("s3://bucket/dir/a.csv") == (
            "https://bucket.s3.eu-west-1.amazonaws.com/dir/a.csv"
        )

    def test_s3_without_region(self, session):
        fetcher = HttpBlobFetcher(timeout=5, region="", session=session)
        assert fetcher.resolve_url("s3://bucket/a.csv") == "https://bucket.s3.amazonaws.com/a.csv"

    def test_https_unchanged(self, fetcher):
        assert fetcher.resolve_url("https://host/a.csv") == "https://host/a.csv"


class TestFetch:
    def test_fetch_returns_bytes(self, fetcher, session):
        session.get.return_value = _response(content=b"payload")
        assert fetcher.fetch("s3://bucket/a") == b"payload"
        session.get.assert_called_once_with(
            "https://bucket.s3.eu-west-1.amazonaws.com/a", timeout=5
        )

    def test_fetch_http_error(self, fetcher, session):
        session.get.return_value = _response(status_code=500)
        with pytest.raises(DataImportError) as excinfo:
            fetcher.fetch("https://host/a")
        assert excinfo.value.kind == ImportErrorKind.INVALID_SOURCE_DATA

    def test_fetch_connection_error(self, fetcher, session):
        session.get.side_effect = requests.ConnectionError("refused")
        with pytest.raises(DataImportError) as excinfo:
            fetcher.fetch("https://host/a")
        assert isinstance(excinfo.value.original_error, requests.ConnectionError)


class TestExists:
    def test_missing(self, fetcher, session):
        session.head.return_value = _response(status_code=404)
        assert fetcher.exists("s3://bucket/a") is False

    def test_access_denied_raises(self, fetcher, session):
        """A forbidden object is not reported as missing."""
        session.head.return_value = _response(status_code=403)
        with pytest.raises(DataImportError) as excinfo:
            fetcher.exists("s3://bucket/a")
        assert excinfo.value.kind == ImportErrorKind.INVALID_SOURCE_DATA
        assert excinfo.value.message == "Access denied to file s3://bucket/a"

    def test_present(self, fetcher, session):
        session.head.return_value = _response(status_code=200)
        assert fetcher.exists("s3://bucket/a") is True

    def test_server_error_raises(self, fetcher, session):
        session.head.return_value = _response(status_code=503)
        with pytest.raises(DataImportError):
            fetcher.exists("s3://bucket/a")


class TestDownload:
    def test_streams_to_file(self, fetcher, session, tmp_path):
        session.get.return_value = _response(chunks=[b"id\n", b"1\n"])
        destination = fetcher.download("https://host/a.csv", tmp_path / "a.csv")
        assert destination.read_bytes() == b"id\n1\n"
        assert session.get.call_args.kwargs["stream"] is True


class TestLoadManifest:
    def test_parses_entries(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = (
            b'{"entries": [{"url": "s3://b/1.csv", "mandatory": true}, {"url": "s3://b/2.csv"}]}'
        )
        manifest = load_manifest(fetcher, "s3://b/manifest")
        assert [e.url for e in manifest.entries] == ["s3://b/1.csv", "s3://b/2.csv"]
        assert manifest.entries[0].mandatory
        assert not manifest.entries[1].mandatory

    def test_empty_entries(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = b'{"entries": []}'
        assert load_manifest(fetcher, "s3://b/manifest").entries == []

    def test_invalid_manifest(self):
        fetcher = MagicMock()
        fetcher.fetch.return_value = b'{"entries": [{"mandatory": true}]}'
        with pytest.raises(DataImportError) as excinfo:
            load_manifest(fetcher, "s3://b/manifest")
        assert excinfo.value.kind == ImportErrorKind.INVALID_SOURCE_DATA
