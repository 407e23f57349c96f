"""term_sync.py
Mirror an ontology graph store into the terms (percolator + suggestion) index.

Workflow
---------
1. Append ``LIMIT 500 OFFSET <offset>`` to the configured term-listing query
   and fetch one page of ``?s`` / ``?slabel`` bindings.
2. Stop when a page comes back empty.
3. Drop labels of two characters or fewer and configured stopwords.
4. Bulk-load the remaining terms as percolator/completion documents.
5. Advance the offset by the *raw* page size and repeat.

Pages are fetched strictly one after another.  Any failed graph query or bulk
load aborts the sync; the offset reached so far is logged so a rerun starts
from scratch knowingly.  Term documents carry deterministic ids, so a rerun
overwrites instead of duplicating.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from tqdm import tqdm

from src.common.elastic_search_client import ElasticSearchClient, index_action
from src.common.entities import Term
from src.common.errors import IndexingError
from src.common.schemas import TermsResponse, parse
from src.common.sparql_client import SparqlClient

logger = logging.getLogger(__name__)

PAGE_SIZE = 500
MIN_LABEL_LENGTH = 3


@dataclass
class TermSyncResult:
    pages: int = 0
    fetched: int = 0
    indexed: int = 0
    offset: int = 0


def page_query(sparql_query: str, offset: int, limit: int = PAGE_SIZE) -> str:
    return f"\n{sparql_query}\nLIMIT {limit}\nOFFSET {offset}"


def filter_terms(terms: Iterable[Term], stopwords: Iterable[str]) -> list[Term]:
    """Keep terms whose label is longer than two characters and not a stopword."""
    stop = set(stopwords)
    return [t for t in terms if len(t["label"]) >= MIN_LABEL_LENGTH and t["label"] not in stop]


def term_id(term: Term, named_graph_uri: str) -> str:
    """Stable document id for a term, so re-syncs overwrite."""
    base = f"{named_graph_uri}|{term['uri']}|{term['label']}"
    return hashlib.md5(base.encode()).hexdigest()


def term_document(term: Term, terminology_title: str, named_graph_uri: str) -> dict[str, Any]:
    """Build the terms-index document: a stored phrase query plus suggestion input."""
    return {
        "label": term["label"],
        "suggest": [term["label"]],
        "query": {
            "multi_match": {
                "query": term["label"],
                "type": "phrase",
                "fields": ["contents", "title"],
            }
        },
        "source_terminology": terminology_title,
        "namedGraphUri": named_graph_uri,
        "uri": term["uri"],
    }


class TermIndexSynchronizer:
    """Full, on-demand sync of one vocabulary into the terms index."""

    def __init__(
        self,
        es: ElasticSearchClient,
        sparql: SparqlClient,
        *,
        index_name: str,
        sparql_query: str,
        terminology_title: str,
        named_graph_uri: str,
        stopwords: Iterable[str] = (),
        page_size: int = PAGE_SIZE,
    ) -> None:
        self._es = es
        self._sparql = sparql
        self._index_name = index_name
        self._sparql_query = sparql_query
        self._terminology_title = terminology_title
        self._named_graph_uri = named_graph_uri
        self._stopwords = frozenset(stopwords)
        self._page_size = page_size

    async def fetch_terms(self, offset: int) -> list[Term]:
        """Fetch one page of terms starting at *offset*."""
        body = await self._sparql.query(
            page_query(self._sparql_query, offset, self._page_size)
        )
        bindings = parse(TermsResponse, body, "term listing").results.bindings
        return [{"label": b.slabel.value, "uri": b.s.value} for b in bindings]

    def bulk_index_terms(self, terms: list[Term]) -> None:
        operations: list[dict[str, Any]] = []
        for term in terms:
            operations.extend(
                index_action(
                    self._index_name,
                    term_id(term, self._named_graph_uri),
                    term_document(term, self._terminology_title, self._named_graph_uri),
                )
            )

        logger.info("Starting bulk index of %d terms", len(terms))
        self._es.bulk(self._index_name, operations)
        logger.info("Finished bulk index of %d terms", len(terms))

    async def sync(self) -> TermSyncResult:
        result = TermSyncResult()
        with tqdm(desc="Syncing terms", unit="term") as progress:
            try:
                while await self._sync_page(result):
                    progress.update(result.fetched - progress.n)
            except IndexingError:
                logger.error("Term sync aborted at offset %d", result.offset)
                raise
        return result

    async def _sync_page(self, result: TermSyncResult) -> bool:
        """Fetch and load the page at ``result.offset``; ``False`` once exhausted."""
        terms = await self.fetch_terms(result.offset)
        logger.info("Got %d terms from the graph store", len(terms))
        if not terms:
            return False

        valid_terms = filter_terms(terms, self._stopwords)
        logger.info("Got %d valid terms from the graph store", len(valid_terms))

        if valid_terms:
            self.bulk_index_terms(valid_terms)

        logger.info(
            "Indexed terms from %d to %d", result.offset, result.offset + len(terms) - 1
        )
        result.pages += 1
        result.fetched += len(terms)
        result.indexed += len(valid_terms)
        # Track the upstream cursor, not what survived filtering.
        result.offset += len(terms)
        return True
