"""retag.py
Batch job that re-tags every indexed document against the current terms index.

Run after a term sync so existing documents pick up new or removed terms:

    python -m src.indexing.index_cli retag

Each document is percolated from its stored title and extracted text and its
``_terms`` list is replaced by a partial update.  A document that fails is
logged and counted; the scan always continues and the scroll is always closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from tqdm import tqdm

from src.common.elastic_search_client import ElasticSearchClient
from src.common.errors import IndexingError
from src.common.mappings import BITSTREAM_TEXT_FIELD, TERMS_FIELD
from src.indexing.document_builder import TITLE_KEY, flatten_key
from src.indexing.tagger import PercolationTagger

logger = logging.getLogger(__name__)


@dataclass
class RetagResult:
    visited: int = 0
    updated: int = 0
    failed: list[str] = field(default_factory=list)


def _first(value: Any) -> str:
    if isinstance(value, list):
        return str(value[0]) if value else ""
    return "" if value is None else str(value)


def retag_documents(
    es: ElasticSearchClient,
    tagger: PercolationTagger,
    index_name: str,
) -> RetagResult:
    result = RetagResult()
    title_field = flatten_key(TITLE_KEY)

    def _retag(hit: dict[str, Any]) -> None:
        doc_id = hit["_id"]
        source = hit.get("_source", {})
        fields = {
            "title": _first(source.get(title_field)),
            "contents": source.get(BITSTREAM_TEXT_FIELD) or "",
        }
        try:
            terms = tagger.tag(fields)
            es.update_document(index_name, doc_id, {TERMS_FIELD: terms})
        except IndexingError as exc:
            logger.error("Re-tagging failed for document %s: %s", doc_id, exc)
            result.failed.append(doc_id)
        else:
            result.updated += 1
        finally:
            progress.update(1)

    total = es.count(index_name)
    logger.info("Re-tagging %d documents in '%s' …", total, index_name)
    with tqdm(total=total, desc="Re-tagging", unit="doc") as progress:
        result.visited = es.scroll_map(
            index_name, _retag, includes=["uuid", title_field, BITSTREAM_TEXT_FIELD]
        )

    logger.info(
        "Re-tagging completed: %d updated, %d failed.", result.updated, len(result.failed)
    )
    return result
