"""index_cli.py
Command-line entry point for index maintenance.

    python -m src.indexing.index_cli create-indices
    python -m src.indexing.index_cli sync-terms
    python -m src.indexing.index_cli retag

This module only handles CLI parsing and wiring; the work is done by
:class:`src.indexing.term_sync.TermIndexSynchronizer` and
:func:`src.indexing.retag.retag_documents`.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from src.common.elastic_search_client import ElasticSearchClient
from src.common.errors import ConfigurationError
from src.common.settings import Settings
from src.common.sparql_client import SparqlClient
from src.indexing.retag import retag_documents
from src.indexing.tagger import PercolationTagger
from src.indexing.term_sync import TermIndexSynchronizer, TermSyncResult

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Maintain the documents and terms indices.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    create = sub.add_parser("create-indices", help="Create both indices if absent")
    create.add_argument(
        "--force-delete-index",
        action="store_true",
        help="Delete existing indices first (destroys their contents)",
    )

    sync = sub.add_parser("sync-terms", help="Load ontology terms into the terms index")
    sync.add_argument(
        "--query-file",
        default=None,
        help="File holding the SPARQL term query (overrides TERM_SYNC_QUERY)",
    )

    sub.add_parser("retag", help="Re-tag every indexed document")
    return parser.parse_args()


def create_indices(
    es: ElasticSearchClient, settings: Settings, *, force_delete: bool = False
) -> None:
    """Create the documents and terms indices, optionally dropping them first."""
    names = (settings.documents_index_name, settings.terms_index_name)
    if force_delete:
        for name in names:
            es.delete_index(name)
    created = (
        es.create_documents_index(settings.documents_index_name),
        es.create_terms_index(settings.terms_index_name),
    )
    for name, was_created in zip(names, created):
        logger.info("Index '%s' %s", name, "created" if was_created else "already exists")


async def sync_terms(
    es: ElasticSearchClient, settings: Settings, sparql_query: str
) -> TermSyncResult:
    async with SparqlClient(settings.sparql_url, timeout=settings.sparql_timeout) as sparql:
        synchronizer = TermIndexSynchronizer(
            es,
            sparql,
            index_name=settings.terms_index_name,
            sparql_query=sparql_query,
            terminology_title=settings.terminology_title,
            named_graph_uri=settings.named_graph_uri,
            stopwords=settings.stopwords,
        )
        return await synchronizer.sync()


def main() -> None:
    """Parse CLI options and run the selected maintenance job."""
    args = _parse_args()
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    es = ElasticSearchClient(settings.es_host, request_timeout=settings.es_request_timeout)

    if args.command == "create-indices":
        create_indices(es, settings, force_delete=args.force_delete_index)

    elif args.command == "sync-terms":
        if args.query_file:
            with open(args.query_file, encoding="utf-8") as fh:
                sparql_query = fh.read()
        elif settings.term_sync_query:
            sparql_query = settings.term_sync_query
        else:
            raise ConfigurationError("TERM_SYNC_QUERY is not set and no --query-file given")
        result = asyncio.run(sync_terms(es, settings, sparql_query))
        logger.info(
            "Term sync finished: %d pages, %d fetched, %d indexed",
            result.pages,
            result.fetched,
            result.indexed,
        )

    elif args.command == "retag":
        tagger = PercolationTagger(
            es, settings.terms_index_name, size=settings.percolate_size
        )
        result = retag_documents(es, tagger, settings.documents_index_name)
        if result.failed:
            raise SystemExit(1)


if __name__ == "__main__":
    main()
