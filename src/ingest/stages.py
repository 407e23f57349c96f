"""stages.py
Per-document ingestion stages.

Flow
----
1. :class:`Scheduler` polls the repository feed and publishes one
   ``available-document`` event per item newer than its watermark.
2. :class:`MetadataStage` stores the item snapshot as ``metadata/<id>.json``.
3. :class:`BitstreamStage` downloads the primary bitstream to
   ``bitstreams/<id>.<ext>``, or indexes metadata only when there is none.
4. :class:`ExtractorStage` asks the text extractor to write ``extracted/<id>.txt``.
5. :class:`ExtractionForwarder` turns that write into a ``text-extracted`` event.
6. :class:`IndexingStage` tags the document and writes it to the documents index.

Every handler keys its outputs by document id, so a redelivered message
rewrites the same objects and the same index document.
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from src.common.elastic_search_client import ElasticSearchClient
from src.common.entities import Bitstream, DocumentItem
from src.common.schemas import parse
from src.indexing.document_builder import build_indexed_document, percolate_fields
from src.indexing.tagger import PercolationTagger
from src.ingest.bus import MessageBus
from src.ingest.events import (
    AVAILABLE_DOCUMENT_TOPIC,
    TEXT_EXTRACTED_TOPIC,
    AvailableDocument,
    ObjectCreated,
    TextExtracted,
)
from src.ingest.extractor import TextExtractor
from src.ingest.repository import RepositoryClient
from src.ingest.storage import ObjectStore

logger = logging.getLogger(__name__)

METADATA_BUCKET = "metadata"
BITSTREAM_BUCKET = "bitstreams"
EXTRACTED_BUCKET = "extracted"
STATE_BUCKET = "state"

WATERMARK_KEY = "scheduler-watermark.json"
IDENTIFIER_URI_KEY = "dc.identifier.uri"


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def select_primary_bitstream(
    bitstreams: Iterable[Bitstream], mime_types: Iterable[str]
) -> Optional[Bitstream]:
    """First retrievable bitstream of an extractable type, in any bundle."""
    wanted = set(mime_types)
    for bitstream in bitstreams:
        if bitstream.mime_type in wanted and bitstream.retrieve_link:
            return bitstream
    return None


class Scheduler:
    """Feed poller that announces new repository items."""

    def __init__(
        self,
        repository: RepositoryClient,
        store: ObjectStore,
        bus: MessageBus,
        *,
        interval: int = 300,
    ) -> None:
        self._repository = repository
        self._store = store
        self._bus = bus
        self._interval = interval

    async def load_watermark(self) -> datetime:
        state = await self._store.get_json(STATE_BUCKET, WATERMARK_KEY)
        if state is None:
            return datetime.now(timezone.utc) - timedelta(seconds=self._interval)
        return _as_utc(datetime.fromisoformat(state["watermark"]))

    async def save_watermark(self, watermark: datetime) -> None:
        await self._store.put_json(
            STATE_BUCKET, WATERMARK_KEY, {"watermark": watermark.isoformat()}
        )

    async def run(self) -> int:
        """Poll once; return the number of ``available-document`` events published.

        The watermark is only saved after every announcement went out, so a
        failed run repeats its announcements on the next poll.
        """
        watermark = await self.load_watermark()
        feed = await self._repository.get_feed()
        fresh = [item for item in feed.items if _as_utc(item.pub_date) > watermark]
        logger.info(
            "Feed lists %d items, %d newer than %s", len(feed.items), len(fresh), watermark
        )

        published = 0
        newest = watermark
        for entry in fresh:
            matches = await self._repository.find(IDENTIFIER_URI_KEY, entry.link)
            if not matches:
                logger.warning("No repository item found for feed link %s", entry.link)
            for item in matches:
                await self._bus.publish(AVAILABLE_DOCUMENT_TOPIC, AvailableDocument(uuid=item.uuid))
                published += 1
            newest = max(newest, _as_utc(entry.pub_date))

        if newest > watermark:
            await self.save_watermark(newest)
        return published


class MetadataStage:
    def __init__(self, repository: RepositoryClient, store: ObjectStore) -> None:
        self._repository = repository
        self._store = store

    async def handle(self, event: AvailableDocument) -> None:
        item = await self._repository.get_item(event.uuid)
        if item is None:
            logger.warning("Item %s no longer exists in the repository; skipping", event.uuid)
            return
        await self._store.put_json(METADATA_BUCKET, f"{item.uuid}.json", item.to_json())


class IndexingStage:
    """Tag a stored snapshot and write the final index document."""

    def __init__(
        self,
        store: ObjectStore,
        tagger: PercolationTagger,
        es: ElasticSearchClient,
        index_name: str,
    ) -> None:
        self._store = store
        self._tagger = tagger
        self._es = es
        self._index_name = index_name

    async def handle(self, event: TextExtracted) -> None:
        text = await self._store.get_text(event.bucket, event.key)
        await self.index_document(event.uuid, text)

    async def index_document(self, uuid: str, text: Optional[str] = None) -> None:
        raw = await self._store.get_json(METADATA_BUCKET, f"{uuid}.json")
        if raw is None:
            logger.warning("No stored metadata for document %s; not indexing", uuid)
            return
        item = parse(DocumentItem, raw, "stored metadata")

        # ES client is synchronous
        terms = await asyncio.to_thread(self._tagger.tag, percolate_fields(item, text))
        document = build_indexed_document(item, text, terms)
        await asyncio.to_thread(self._es.put_document, self._index_name, uuid, document)
        logger.info("Indexed document %s with %d terms", uuid, len(terms))


class BitstreamStage:
    def __init__(
        self,
        repository: RepositoryClient,
        store: ObjectStore,
        indexing: IndexingStage,
        *,
        mime_types: Iterable[str] = ("application/pdf",),
    ) -> None:
        self._repository = repository
        self._store = store
        self._indexing = indexing
        self._mime_types = tuple(mime_types)

    async def handle(self, event: ObjectCreated) -> None:
        uuid = event.document_id
        raw = await self._store.get_json(event.bucket, event.key)
        if raw is None:
            logger.warning("Metadata object %s/%s is gone; skipping", event.bucket, event.key)
            return
        item = parse(DocumentItem, raw, "stored metadata")

        bitstream = select_primary_bitstream(item.bitstreams, self._mime_types)
        if bitstream is None:
            logger.info("Document %s has no extractable bitstream; indexing metadata only", uuid)
            await self._indexing.index_document(uuid)
            return

        data = await self._repository.get_bitstream(bitstream.retrieve_link)
        logger.info(
            "Fetched bitstream for %s (%d bytes, checksum %s)",
            uuid,
            len(data),
            bitstream.check_sum.value if bitstream.check_sum else "n/a",
        )
        extension = mimetypes.guess_extension(bitstream.mime_type or "") or ".bin"
        await self._store.put(BITSTREAM_BUCKET, f"{uuid}{extension}", data)


class ExtractorStage:
    """Hand a stored bitstream to the text extractor.

    When nothing can be extracted the document is indexed from metadata alone.
    """

    def __init__(self, extractor: TextExtractor, indexing: IndexingStage) -> None:
        self._extractor = extractor
        self._indexing = indexing

    async def handle(self, event: ObjectCreated) -> None:
        extracted = await self._extractor.extract(event.bucket, event.key, event.document_id)
        if not extracted:
            await self._indexing.index_document(event.document_id)


class ExtractionForwarder:
    def __init__(self, bus: MessageBus) -> None:
        self._bus = bus

    async def handle(self, event: ObjectCreated) -> None:
        await self._bus.publish(
            TEXT_EXTRACTED_TOPIC,
            TextExtracted(uuid=event.document_id, bucket=event.bucket, key=event.key),
        )
