"""
Blob fetch collaborator for manifests and remote source files.

``BlobFetcher`` is the contract the loader depends on. ``HttpBlobFetcher``
implements it with requests over HTTP(S); ``s3://bucket/key`` URLs are
rewritten to the bucket's virtual-hosted HTTPS endpoint, so objects must be
readable by URL (public or pre-signed).
"""

from pathlib import Path
from typing import List, Optional, Protocol
from urllib.parse import urlparse

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from warehouse_import.config import get_settings
from warehouse_import.exceptions import DataImportError, ImportErrorKind
from warehouse_import.utils.logging import get_logger

logger = get_logger(__name__)

_CHUNK_SIZE = 1024 * 1024


class ManifestEntry(BaseModel):
    """One file listed in a manifest."""

    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1, description="Location of the file")
    mandatory: bool = Field(
        default=False, description="Fail the import when the file is missing"
    )


class Manifest(BaseModel):
    """Manifest document: ``{"entries": [{"url": ..., "mandatory": ...}]}``."""

    model_config = ConfigDict(extra="ignore")

    entries: List[ManifestEntry] = Field(default_factory=list)


class BlobFetcher(Protocol):
    """Read access to remote objects."""

    def fetch(self, url: str) -> bytes: ...

    def exists(self, url: str) -> bool: ...

    def download(self, url: str, destination: Path) -> Path: ...


class HttpBlobFetcher:
    """requests based ``BlobFetcher``."""

    def __init__(
        self,
        timeout: Optional[int] = None,
        region: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ):
        settings = get_settings()
        self.timeout = timeout if timeout is not None else settings.blob_fetch_timeout
        self.region = region if region is not None else settings.aws_region
        self.session = session or requests.Session()

    def resolve_url(self, url: str) -> str:
        """
        Map ``s3://`` URLs to HTTPS; other URLs are returned unchanged.

        Examples:
            >>> HttpBlobFetcher(region="eu-west-1").resolve_url("s3://bucket/a/b.csv")
            'https://bucket.s3.eu-west-1.amazonaws.com/a/b.csv'
        """
        parsed = urlparse(url)
        if parsed.scheme != "s3":
            return url
        if self.region:
            host = f"{parsed.netloc}.s3.{self.region}.amazonaws.com"
        else:
            host = f"{parsed.netloc}.s3.amazonaws.com"
        return f"https://{host}{parsed.path}"

    def fetch(self, url: str) -> bytes:
        try:
            response = self.session.get(self.resolve_url(url), timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Unable to download file {url}: {exc}",
                original_error=exc,
            ) from exc
        return response.content

    def exists(self, url: str) -> bool:
        try:
            response = self.session.head(
                self.resolve_url(url), timeout=self.timeout, allow_redirects=True
            )
        except requests.RequestException as exc:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Unable to check file {url}: {exc}",
                original_error=exc,
            ) from exc
        if response.status_code == 404:
            return False
        if response.status_code == 403:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Access denied to file {url}",
            )
        if response.status_code >= 400:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Unable to check file {url}: HTTP {response.status_code}",
            )
        return True

    def download(self, url: str, destination: Path) -> Path:
        """Stream ``url`` into ``destination`` without buffering it in memory."""
        try:
            with self.session.get(
                self.resolve_url(url), timeout=self.timeout, stream=True
            ) as response:
                response.raise_for_status()
                with open(destination, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                        handle.write(chunk)
        except requests.RequestException as exc:
            raise DataImportError(
                ImportErrorKind.INVALID_SOURCE_DATA,
                f"Unable to download file {url}: {exc}",
                original_error=exc,
            ) from exc
        logger.debug("blob.downloaded", url=url, destination=str(destination))
        return destination


def load_manifest(fetcher: BlobFetcher, url: str) -> Manifest:
    """Fetch and parse the manifest at ``url``."""
    raw = fetcher.fetch(url)
    try:
        return Manifest.model_validate_json(raw)
    except ValidationError as exc:
        raise DataImportError(
            ImportErrorKind.INVALID_SOURCE_DATA,
            f"Invalid manifest {url}: {exc}",
            original_error=exc,
        ) from exc
