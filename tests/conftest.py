"""Shared pytest fixtures for the indexing, ingest and search tests."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import pytest
from elastic_transport import ApiResponseMeta, HttpHeaders, NodeConfig
from elasticsearch import ApiError, NotFoundError

from src.common.elastic_search_client import ElasticSearchClient
from src.common.entities import DocumentItem
from src.common.settings import Settings


def _meta(status: int) -> ApiResponseMeta:
    return ApiResponseMeta(
        status=status,
        http_version="1.1",
        headers=HttpHeaders(),
        duration=0.0,
        node=NodeConfig("http", "localhost", 9200),
    )


@pytest.fixture
def api_error() -> Callable[..., ApiError]:
    """Build the exception the official client raises for a non-2xx answer."""

    def _make(status: int, body: Any = None) -> ApiError:
        cls = NotFoundError if status == 404 else ApiError
        return cls(f"HTTP {status}", _meta(status), body if body is not None else {})

    return _make


@pytest.fixture
def raw_es() -> MagicMock:
    """Stand-in for ``elasticsearch.Elasticsearch``."""
    return MagicMock()


@pytest.fixture
def es(raw_es: MagicMock) -> ElasticSearchClient:
    return ElasticSearchClient(client=raw_es)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        es_host="http://es.test:9200",
        sparql_url="http://graph.test/sparql",
        repository_endpoint="http://repo.test",
        storage_root=tmp_path / "store",
        documents_index_name="documents",
        terms_index_name="terms",
        stopwords=["the"],
    )


@pytest.fixture
def sample_item() -> DocumentItem:
    return DocumentItem.model_validate(
        {
            "uuid": "c0ffee00-0000-4000-8000-000000000001",
            "handle": "11329/42",
            "lastModified": "2024-05-01 10:00:00.0",
            "metadata": [
                {"key": "dc.title", "value": "Seawater sampling guide"},
                {"key": "dc.subject.other", "value": "salinity"},
                {"key": "dc.subject.other", "value": "temperature"},
                {"key": "dc.description.refereed", "value": "Refereed"},
            ],
            "bitstreams": [
                {
                    "bundleName": "THUMBNAIL",
                    "mimeType": "image/jpeg",
                    "retrieveLink": "/rest/bitstreams/thumb/retrieve",
                },
                {
                    "bundleName": "ORIGINAL",
                    "mimeType": "application/pdf",
                    "retrieveLink": "/rest/bitstreams/pdf/retrieve",
                    "checkSum": {"value": "abc123", "checkSumAlgorithm": "MD5"},
                },
            ],
        }
    )

