"""Repository → object store → tagging → Elasticsearch ingestion pipeline.

Workflow
---------
1. The scheduler reads the repository RSS feed and announces every item
   published after the stored watermark.
2. Each announced item flows through the stages in :mod:`src.ingest.stages`,
   connected by the message bus and the object store's object-created topics.
3. :meth:`IngestPipeline.poll` and :meth:`IngestPipeline.ingest` return once
   the bus has drained, i.e. every triggered stage has finished or been
   dead-lettered.

Configuration comes from :class:`src.common.settings.Settings`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from src.common.elastic_search_client import ElasticSearchClient
from src.common.settings import Settings
from src.indexing.tagger import PercolationTagger
from src.ingest.bus import InMemoryMessageBus
from src.ingest.events import (
    AVAILABLE_DOCUMENT_TOPIC,
    TEXT_EXTRACTED_TOPIC,
    AvailableDocument,
    object_created_topic,
)
from src.ingest.extractor import PdfTextExtractor, TextExtractor
from src.ingest.repository import RepositoryClient
from src.ingest.stages import (
    BITSTREAM_BUCKET,
    EXTRACTED_BUCKET,
    METADATA_BUCKET,
    BitstreamStage,
    ExtractionForwarder,
    ExtractorStage,
    IndexingStage,
    MetadataStage,
    Scheduler,
)
from src.ingest.storage import LocalObjectStore, ObjectStore

logger = logging.getLogger(__name__)


class IngestPipeline:
    def __init__(
        self,
        settings: Settings,
        es: ElasticSearchClient,
        repository: RepositoryClient,
        *,
        bus: Optional[InMemoryMessageBus] = None,
        store: Optional[ObjectStore] = None,
        extractor: Optional[TextExtractor] = None,
        tagger: Optional[PercolationTagger] = None,
    ) -> None:
        self.bus = bus or InMemoryMessageBus(
            max_deliveries=settings.max_deliveries,
            concurrency=settings.stage_concurrency,
        )
        self.store = store or LocalObjectStore(settings.storage_root, self.bus)
        tagger = tagger or PercolationTagger(
            es, settings.terms_index_name, size=settings.percolate_size
        )

        self.scheduler = Scheduler(
            repository, self.store, self.bus, interval=settings.schedule_interval
        )
        self.indexing = IndexingStage(self.store, tagger, es, settings.documents_index_name)
        self.metadata = MetadataStage(repository, self.store)
        self.bitstream = BitstreamStage(
            repository,
            self.store,
            self.indexing,
            mime_types=settings.primary_mime_types,
        )
        self.extractor = ExtractorStage(
            extractor or PdfTextExtractor(self.store, EXTRACTED_BUCKET), self.indexing
        )
        self.forwarder = ExtractionForwarder(self.bus)
        self._interval = settings.schedule_interval

        self.bus.subscribe(AVAILABLE_DOCUMENT_TOPIC, self.metadata.handle)
        self.bus.subscribe(object_created_topic(METADATA_BUCKET), self.bitstream.handle)
        self.bus.subscribe(object_created_topic(BITSTREAM_BUCKET), self.extractor.handle)
        self.bus.subscribe(object_created_topic(EXTRACTED_BUCKET), self.forwarder.handle)
        self.bus.subscribe(TEXT_EXTRACTED_TOPIC, self.indexing.handle)

    async def __aenter__(self) -> "IngestPipeline":
        await self.bus.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.bus.stop()

    async def poll(self) -> int:
        """Run the scheduler once and wait for every announced document."""
        announced = await self.scheduler.run()
        await self.bus.join()
        logger.info(
            "Poll finished: %d documents announced, %d dead letters so far",
            announced,
            len(self.bus.dead_letters),
        )
        return announced

    async def ingest(self, uuid: str) -> None:
        """Push a single repository item through every stage."""
        await self.bus.publish(AVAILABLE_DOCUMENT_TOPIC, AvailableDocument(uuid=uuid))
        await self.bus.join()

    async def watch(self) -> None:
        """Poll forever, sleeping the schedule interval between polls."""
        while True:
            try:
                await self.poll()
            except Exception:
                logger.exception("Scheduled poll failed; retrying in %ds", self._interval)
            await asyncio.sleep(self._interval)
