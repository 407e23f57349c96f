"""extractor.py
Text extraction service: turns a stored bitstream into plain text and writes
it to the extraction destination bucket as ``<id>.txt``.

The write itself is the completion signal; the destination bucket's
object-created notification drives the indexing stage.
"""

from __future__ import annotations

import asyncio
import io
import logging
from abc import ABC, abstractmethod
from typing import Optional

import pypdfium2 as pdfium

from src.ingest.storage import ObjectStore

logger = logging.getLogger(__name__)


def pdf_to_text(data: bytes) -> Optional[str]:
    """Return plain text for a PDF given its *data* bytes, or ``None`` if unreadable."""
    pdf: Optional[pdfium.PdfDocument] = None
    try:
        pdf = pdfium.PdfDocument(io.BytesIO(data))
        texts: list[str] = []
        for page in pdf:
            textpage = page.get_textpage()
            texts.append(textpage.get_text_bounded())
            textpage.close()
            page.close()
        return "\n".join(texts)
    except pdfium.PdfiumError as exc:
        logger.warning("PDF parsing error: %s", exc)
        return None
    finally:
        if pdf is not None:
            pdf.close()


class TextExtractor(ABC):
    @abstractmethod
    async def extract(self, source_bucket: str, key: str, document_id: str) -> bool:
        """Extract text from ``source_bucket/key``; ``True`` if text was written."""


class PdfTextExtractor(TextExtractor):
    """Local pypdfium2-backed extractor writing into *destination_bucket*."""

    def __init__(self, store: ObjectStore, destination_bucket: str) -> None:
        self._store = store
        self._destination = destination_bucket

    async def extract(self, source_bucket: str, key: str, document_id: str) -> bool:
        data = await self._store.get(source_bucket, key)
        if data is None:
            logger.warning("Bitstream %s/%s vanished before extraction", source_bucket, key)
            return False

        text = await asyncio.to_thread(pdf_to_text, data)
        if text is None:
            logger.warning("No text could be extracted from %s/%s", source_bucket, key)
            return False

        await self._store.put(self._destination, f"{document_id}.txt", text.encode("utf-8"))
        logger.info("Extracted %d characters for document %s", len(text), document_id)
        return True
