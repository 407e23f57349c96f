"""Tests for the pypdfium2 text extractor."""

from __future__ import annotations

import io
from pathlib import Path

import pypdfium2 as pdfium
import pytest

from src.ingest.extractor import PdfTextExtractor, pdf_to_text
from src.ingest.storage import LocalObjectStore


def _blank_pdf() -> bytes:
    pdf = pdfium.PdfDocument.new()
    pdf.new_page(200, 200)
    buffer = io.BytesIO()
    pdf.save(buffer)
    pdf.close()
    return buffer.getvalue()


class TestPdfToText:
    def test_invalid_data_is_none(self) -> None:
        assert pdf_to_text(b"not a pdf") is None

    def test_blank_page_is_empty_text(self) -> None:
        assert pdf_to_text(_blank_pdf()).strip() == ""


class TestPdfTextExtractor:
    @pytest.mark.asyncio
    async def test_writes_text_object(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        await store.put("bitstreams", "abc.pdf", _blank_pdf())

        assert await PdfTextExtractor(store, "extracted").extract("bitstreams", "abc.pdf", "abc")
        assert await store.get_text("extracted", "abc.txt") is not None

    @pytest.mark.asyncio
    async def test_unreadable_bitstream_writes_nothing(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        await store.put("bitstreams", "abc.pdf", b"garbage")

        assert not await PdfTextExtractor(store, "extracted").extract("bitstreams", "abc.pdf", "abc")
        assert await store.get("extracted", "abc.txt") is None

    @pytest.mark.asyncio
    async def test_missing_bitstream(self, tmp_path: Path) -> None:
        store = LocalObjectStore(tmp_path)
        assert not await PdfTextExtractor(store, "extracted").extract("bitstreams", "x.pdf", "x")
