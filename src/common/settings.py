"""Settings shared by *indexing*, *ingest* and *search*.

All values are sourced from environment variables (or a ``.env`` file loaded at
import time).  Entry points build one :class:`Settings` instance and hand it to
the components they construct; library code never reads the environment.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv(override=True)

DEFAULT_STOPWORDS = [
    "and",
    "are",
    "for",
    "from",
    "has",
    "not",
    "the",
    "this",
    "that",
    "was",
    "were",
    "with",
]


class Settings(BaseSettings):
    """Runtime configuration.

    Fields
    ------
    es_host
        Search store HTTP endpoint (single-node setup assumed).
    es_request_timeout
        Per-request timeout, in seconds, for the search store client.
    documents_index_name
        Index holding one tagged document per repository item.
    terms_index_name
        Index holding ontology terms as percolator queries and suggestions.
    sparql_url
        SPARQL endpoint of the ontology graph store.
    sparql_timeout
        Timeout, in seconds, for graph store requests.
    proxy_timeout
        Short timeout, in seconds, for the SPARQL proxy and health checks.
    repository_endpoint
        Base URL of the source repository REST API (protocol included).
    storage_root
        Directory under which the local object store keeps its buckets.
    primary_mime_types
        Bitstream mime types treated as extractable primary content.
    schedule_interval
        Seconds between feed polls; also the look-back window when no
        watermark has been stored yet.
    max_deliveries
        Delivery attempts per message before it is dead-lettered.
    stage_concurrency
        Concurrent workers per pipeline stage subscription.
    percolate_size
        Maximum number of matching terms returned for one document.
    term_sync_query
        SPARQL query listing ``?s`` / ``?slabel`` bindings, without LIMIT/OFFSET.
    terminology_title
        Human readable vocabulary name stored on every synced term.
    named_graph_uri
        Provenance graph stored on every synced term.
    stopwords
        Labels that are never loaded into the terms index.
    log_level
        Root logging level for command line entry points.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    es_host: str = Field("http://localhost:9200")
    es_request_timeout: int = Field(30)
    documents_index_name: str = Field("documents")
    terms_index_name: str = Field("terms")

    sparql_url: str = Field("http://localhost:8182/sparql")
    sparql_timeout: float = Field(30.0)
    proxy_timeout: float = Field(5.0)

    repository_endpoint: str = Field("https://repository.oceanbestpractices.org")
    storage_root: Path = Field(Path("data"))
    primary_mime_types: list[str] = Field(default_factory=lambda: ["application/pdf"])

    schedule_interval: int = Field(300)
    max_deliveries: int = Field(3)
    stage_concurrency: int = Field(4)

    percolate_size: int = Field(300)

    term_sync_query: Optional[str] = Field(None)
    terminology_title: str = Field("")
    named_graph_uri: str = Field("")
    stopwords: list[str] = Field(default_factory=lambda: list(DEFAULT_STOPWORDS))

    log_level: str = Field("INFO")

    api_host: str = Field("127.0.0.1")
    api_port: int = Field(8000)
