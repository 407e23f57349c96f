"""Interactive keyword search over the documents index.

Queries are built with :func:`src.search.query_builder.build_search_document`,
the same builder the HTTP API uses.  Prefix a query with ``~`` to expand it
with ontology synonyms first.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from src.common.elastic_search_client import ElasticSearchClient
from src.common.errors import IndexingError
from src.common.settings import Settings
from src.common.sparql_client import SparqlClient
from src.search.query_builder import SearchOptions
from src.search.search_service import SearchService
from src.search.synonyms import SynonymResolver

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Interactive search over indexed documents.")
    parser.add_argument("--size", type=int, default=5, help="Results per query")
    parser.add_argument("--refereed", action="store_true", help="Only refereed documents")
    parser.add_argument("--endorsed", action="store_true", help="Only endorsed documents")
    parser.add_argument(
        "--term", action="append", default=[], help="Require an ontology term label (repeatable)"
    )
    return parser.parse_args()


def _print_hit(rank: int, hit: dict) -> None:
    source = hit.get("_source", {})
    title = source.get("dc_title", "<no title>")
    if isinstance(title, list):
        title = title[0] if title else "<no title>"
    print(f"{rank}. {title}")
    if source.get("handle"):
        print(f"   Handle: {source['handle']}")
    labels = [t.get("label") for t in source.get("_terms", [])]
    if labels:
        print(f"   Terms: {', '.join(labels)}")
    for fragment in hit.get("highlight", {}).get("_bitstreamText", [])[:2]:
        print(f"   … {fragment.strip()} …")


async def _interactive_loop(service: SearchService, args: argparse.Namespace) -> None:
    print("\n=== Document Search ===")
    print("Comma-separate keywords; prefix with '~' to add synonyms; 'exit' to quit\n")

    while True:
        try:
            query = (await asyncio.to_thread(input, "query> ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break

        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            print("Goodbye!")
            break

        synonyms = query.startswith("~")
        keywords = [k.strip() for k in query.lstrip("~").split(",") if k.strip()]
        options = SearchOptions(
            keywords=keywords,
            terms=args.term,
            size=args.size,
            synonyms=synonyms,
            refereed=args.refereed,
            endorsed=args.endorsed,
        )

        try:
            response = await service.search(options)
        except IndexingError as exc:
            print(f"Search failed: {exc}\n")
            continue

        hits = response.get("hits", {}).get("hits", [])
        if not hits:
            print("No matches found.\n")
            continue
        total = response["hits"].get("total", {}).get("value", len(hits))
        print(f"\nFound {total} results:\n")
        for i, hit in enumerate(hits, 1):
            _print_hit(i, hit)
            print()


async def _run(settings: Settings, args: argparse.Namespace) -> None:
    es = ElasticSearchClient(settings.es_host, request_timeout=settings.es_request_timeout)
    async with SparqlClient(settings.sparql_url, timeout=settings.sparql_timeout) as sparql:
        service = SearchService(es, settings.documents_index_name, SynonymResolver(sparql))
        await _interactive_loop(service, args)


def main() -> None:
    args = _parse_args()
    settings = Settings()
    logging.basicConfig(level=settings.log_level)
    asyncio.run(_run(settings, args))


if __name__ == "__main__":
    main()
