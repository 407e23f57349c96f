"""tagger.py
Tag documents with ontology terms using percolate queries.

Every term in the terms index is stored as a phrase query over ``title`` and
``contents``.  Percolating a document's representative fields returns the
term queries that would have matched it, i.e. the document's tags.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from src.common.elastic_search_client import ElasticSearchClient
from src.common.entities import IndexedDocumentTerm
from src.common.errors import IndexingError
from src.common.schemas import PercolateResponse, parse

logger = logging.getLogger(__name__)

DEFAULT_PERCOLATE_SIZE = 300


@dataclass
class BatchTagResult:
    """Tags per document id plus the documents whose tagging failed."""

    tags: dict[str, list[IndexedDocumentTerm]] = field(default_factory=dict)
    failures: dict[str, IndexingError] = field(default_factory=dict)


class PercolationTagger:
    def __init__(
        self,
        es: ElasticSearchClient,
        terms_index_name: str,
        *,
        from_: int = 0,
        size: int = DEFAULT_PERCOLATE_SIZE,
    ) -> None:
        self._es = es
        self._terms_index_name = terms_index_name
        self._from = from_
        self._size = size

    def tag(self, fields: Mapping[str, str]) -> list[IndexedDocumentTerm]:
        """Return the terms whose stored query matches *fields*.

        Args:
            fields: Representative document fields, ``title`` and ``contents``.

        Returns:
            One record per matching term; empty for an untagged document.

        Raises:
            ResponseValidationError: If the percolate response has an unexpected shape.
            UpstreamError: If the search store rejects the request.
        """
        raw = self._es.percolate(
            self._terms_index_name, dict(fields), from_=self._from, size=self._size
        )
        response = parse(PercolateResponse, raw, "percolate")
        return [
            {
                "label": hit.source.query.multi_match.query,
                "uri": hit.source.uri,
                "source_terminology": hit.source.source_terminology,
                "namedGraphUri": hit.source.namedGraphUri,
            }
            for hit in response.hits.hits
        ]

    def tag_many(self, documents: Mapping[str, Mapping[str, str]]) -> BatchTagResult:
        """Tag several documents; one document failing never stops the others."""
        result = BatchTagResult()
        for doc_id, fields in documents.items():
            try:
                result.tags[doc_id] = self.tag(fields)
            except IndexingError as exc:
                logger.error("Tagging failed for document %s: %s", doc_id, exc)
                result.failures[doc_id] = exc
        return result
