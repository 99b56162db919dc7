"""Connectors to the target database and to source data.

SQLAlchemy and requests backed modules are loaded lazily so importing the
lightweight pieces (``CsvSource``, manifest models) stays cheap.
"""

from __future__ import annotations

import importlib
from typing import Any

from .csv_source import CsvSource

__all__ = [
    "BlobFetcher",
    "ConnectionAdapter",
    "CsvSource",
    "HttpBlobFetcher",
    "Manifest",
    "ManifestEntry",
    "connect",
    "load_manifest",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "ConnectionAdapter": (".connection", "ConnectionAdapter"),
    "connect": (".connection", "connect"),
    "BlobFetcher": (".blob_fetcher", "BlobFetcher"),
    "HttpBlobFetcher": (".blob_fetcher", "HttpBlobFetcher"),
    "Manifest": (".blob_fetcher", "Manifest"),
    "ManifestEntry": (".blob_fetcher", "ManifestEntry"),
    "load_manifest": (".blob_fetcher", "load_manifest"),
}


def __getattr__(name: str) -> Any:
    if name not in _LAZY_IMPORTS:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = _LAZY_IMPORTS[name]
    module = importlib.import_module(module_name, __name__)
    value = getattr(module, attr_name)
    globals()[name] = value
    return value


def __dir__() -> list[str]:
    return sorted(set(list(globals().keys()) + list(_LAZY_IMPORTS.keys())))
