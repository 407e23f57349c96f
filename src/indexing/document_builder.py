"""document_builder.py
Assemble the final documents-index record for one repository item.
"""

from __future__ import annotations

from typing import Any, Optional

from src.common.entities import DocumentItem, IndexedDocument, IndexedDocumentTerm
from src.common.mappings import BITSTREAM_TEXT_FIELD, TERMS_FIELD

TITLE_KEY = "dc.title"


def flatten_key(key: str) -> str:
    """``dc.description.refereed`` -> ``dc_description_refereed``."""
    return key.replace(".", "_")


def flatten_metadata(item: DocumentItem) -> dict[str, Any]:
    """Map each metadata key to its value, or to a list when the key repeats."""
    grouped: dict[str, list[str]] = {}
    for entry in item.metadata:
        grouped.setdefault(flatten_key(entry.key), []).append(entry.value)
    return {key: values[0] if len(values) == 1 else values for key, values in grouped.items()}


def percolate_fields(item: DocumentItem, text: Optional[str]) -> dict[str, str]:
    """The fields stored term queries are matched against."""
    return {
        "title": item.first_value(TITLE_KEY) or "",
        "contents": text or "",
    }


def build_indexed_document(
    item: DocumentItem,
    text: Optional[str],
    terms: list[IndexedDocumentTerm],
) -> IndexedDocument:
    """Merge the item snapshot, its extracted text and its tags.

    The result depends only on the inputs, so re-indexing an unchanged item
    overwrites the stored document with an identical one.
    """
    snapshot = item.to_json()
    document: dict[str, Any] = {
        **flatten_metadata(item),
        "uuid": item.uuid,
        "metadata": snapshot.get("metadata", []),
        "bitstreams": snapshot.get("bitstreams", []),
        TERMS_FIELD: list(terms),
    }
    if item.handle is not None:
        document["handle"] = item.handle
    if item.last_modified is not None:
        document["lastModified"] = item.last_modified
    if text:
        document[BITSTREAM_TEXT_FIELD] = text
    return document  # type: ignore[return-value]
