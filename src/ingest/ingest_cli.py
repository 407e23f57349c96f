"""ingest_cli.py
Command-line entry point for the repository ingestion pipeline.

    python -m src.ingest.ingest_cli schedule [--watch]
    python -m src.ingest.ingest_cli ingest <uuid> [<uuid> ...]

Indices are created by ``python -m src.indexing.index_cli create-indices``.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from src.common.elastic_search_client import ElasticSearchClient
from src.common.settings import Settings
from src.ingest.pipeline import IngestPipeline
from src.ingest.repository import RepositoryClient

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Ingest repository documents into Elasticsearch.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    schedule = sub.add_parser("schedule", help="Poll the repository feed once and drain")
    schedule.add_argument(
        "--watch", action="store_true", help="Keep polling every SCHEDULE_INTERVAL seconds"
    )

    ingest = sub.add_parser("ingest", help="Ingest specific repository items")
    ingest.add_argument("uuids", nargs="+", help="Repository item UUIDs")

    return parser.parse_args()


async def _run(args: argparse.Namespace, settings: Settings, es: ElasticSearchClient) -> None:
    async with RepositoryClient(settings.repository_endpoint) as repository:
        async with IngestPipeline(settings, es, repository) as pipeline:
            if args.command == "schedule":
                if args.watch:
                    await pipeline.watch()
                else:
                    await pipeline.poll()
            else:
                for uuid in args.uuids:
                    await pipeline.ingest(uuid)
            if pipeline.bus.dead_letters:
                logger.error(
                    "%d messages were dead-lettered; see the log above",
                    len(pipeline.bus.dead_letters),
                )


def main() -> None:
    args = _parse_args()
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    es = ElasticSearchClient(settings.es_host, request_timeout=settings.es_request_timeout)
    asyncio.run(_run(args, settings, es))


if __name__ == "__main__":
    main()
