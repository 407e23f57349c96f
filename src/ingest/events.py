"""events.py
Messages exchanged between ingestion stages.

Every message carries the document identifier, which doubles as the
idempotency key: handling the same message twice overwrites the same objects
and the same index document.
"""

from __future__ import annotations

from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict

AVAILABLE_DOCUMENT_TOPIC = "available-document"
TEXT_EXTRACTED_TOPIC = "text-extracted"


def object_created_topic(bucket: str) -> str:
    """Topic on which a bucket announces newly written objects."""
    return f"{bucket}.object-created"


def document_id_from_key(key: str) -> str:
    """``<uuid>.json`` / ``<uuid>.pdf`` / ``<uuid>.txt`` -> ``<uuid>``."""
    return PurePosixPath(key).stem


class Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def document_id(self) -> str:
        raise NotImplementedError


class AvailableDocument(Event):
    """A repository item the scheduler found newer than its watermark."""

    uuid: str

    @property
    def document_id(self) -> str:
        return self.uuid


class ObjectCreated(Event):
    bucket: str
    key: str

    @property
    def document_id(self) -> str:
        return document_id_from_key(self.key)


class TextExtracted(Event):
    uuid: str
    bucket: str
    key: str

    @property
    def document_id(self) -> str:
        return self.uuid
