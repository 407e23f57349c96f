"""entities.py
Shared type definitions used across the ingestion, indexing and search code.

Repository snapshots are pydantic models because they are parsed from remote
JSON and must fail fast on shape mismatch.  Records that are only ever built
locally and written to the search store are plain ``TypedDict`` mappings.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field


class Metadata(BaseModel):
    """One ``key``/``value`` metadata entry; keys may repeat."""

    model_config = ConfigDict(extra="allow")

    key: str
    value: str


class CheckSum(BaseModel):
    model_config = ConfigDict(extra="allow")

    value: str


class Bitstream(BaseModel):
    """A binary attached to a repository item (primary content, thumbnail, ...)."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    bundle_name: Optional[str] = Field(None, alias="bundleName")
    mime_type: Optional[str] = Field(None, alias="mimeType")
    retrieve_link: str = Field(..., alias="retrieveLink")
    check_sum: Optional[CheckSum] = Field(None, alias="checkSum")


class DocumentItem(BaseModel):
    """Immutable snapshot of a repository item as fetched for one pipeline run."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    uuid: str
    handle: Optional[str] = None
    last_modified: Optional[str] = Field(None, alias="lastModified")
    metadata: list[Metadata] = Field(default_factory=list)
    bitstreams: list[Bitstream] = Field(default_factory=list)

    def values(self, key: str) -> list[str]:
        """Return every value stored under *key*, in repository order."""
        return [m.value for m in self.metadata if m.key == key]

    def first_value(self, key: str) -> Optional[str]:
        found = self.values(key)
        return found[0] if found else None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class FeedItem(BaseModel):
    link: str
    pub_date: datetime


class Feed(BaseModel):
    """The parts of the repository RSS feed the scheduler relies on."""

    pub_date: Optional[datetime] = None
    items: list[FeedItem] = Field(default_factory=list)


class Term(TypedDict):
    """An ontology label fetched from the graph store."""

    label: str
    uri: str


class IndexedDocumentTerm(TypedDict):
    """A term a document was tagged with by the percolator."""

    label: str
    uri: str
    source_terminology: str
    namedGraphUri: str


class IndexedDocument(TypedDict, total=False):
    """Canonical schema for documents indexed in the documents index.

    Flattened metadata keys (``dc_title``, ``dc_description_refereed`` ...) are
    added next to these fields at assembly time.
    """

    uuid: str
    handle: str
    lastModified: str
    metadata: list[dict[str, Any]]
    bitstreams: list[dict[str, Any]]
    _bitstreamText: str
    _terms: list[IndexedDocumentTerm]
