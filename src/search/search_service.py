"""search_service.py
Keyword search over the documents index: query-parameter parsing, optional
synonym expansion and execution.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Optional

from src.common.elastic_search_client import ElasticSearchClient
from src.search.query_builder import (
    DEFAULT_FROM,
    DEFAULT_SIZE,
    DEFAULT_SEARCH_FIELDS,
    SearchOptions,
    build_search_document,
)
from src.search.synonyms import SynonymResolver

logger = logging.getLogger(__name__)

TRUE_VALUES = frozenset({"true", "1", "yes"})


def _split(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _flag(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in TRUE_VALUES


def _int(value: Optional[str], default: int, name: str) -> int:
    if value is None or value == "":
        return default
    try:
        parsed = int(value)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, value)
        return default
    if parsed < 0:
        logger.warning("Ignoring negative %s=%r", name, value)
        return default
    return parsed


def parse_search_params(params: Mapping[str, str]) -> Optional[SearchOptions]:
    """Turn raw query parameters into :class:`SearchOptions`.

    Returns ``None`` when ``keywords`` is absent, which callers answer with an
    empty result.  ``term``/``termURI`` are read together with their plural
    aliases ``terms``/``termURIs``.
    """
    if params.get("keywords") is None:
        return None

    fields = _split(params.get("fields"))
    return SearchOptions(
        keywords=_split(params.get("keywords")),
        fields=fields or list(DEFAULT_SEARCH_FIELDS),
        terms=_split(params.get("term")) + _split(params.get("terms")),
        term_uris=_split(params.get("termURI")) + _split(params.get("termURIs")),
        sort=_split(params.get("sort")),
        from_=_int(params.get("from"), DEFAULT_FROM, "from"),
        size=_int(params.get("size"), DEFAULT_SIZE, "size"),
        synonyms=_flag(params.get("synonyms")),
        refereed=_flag(params.get("refereed")),
        endorsed=_flag(params.get("endorsed")),
    )


class SearchService:
    def __init__(
        self,
        es: ElasticSearchClient,
        index_name: str,
        synonyms: Optional[SynonymResolver] = None,
    ) -> None:
        self._es = es
        self._index_name = index_name
        self._synonyms = synonyms

    async def search(self, options: SearchOptions) -> dict[str, Any]:
        """Expand synonyms when requested, then run the search and return the raw response."""
        if options.synonyms and options.keywords and self._synonyms is not None:
            keywords = await self._synonyms.expand(options.keywords)
            logger.info("Expanded keywords %s to %s", options.keywords, keywords)
            options = options.model_copy(update={"keywords": keywords})

        body = build_search_document(options)
        return await asyncio.to_thread(self._es.search, self._index_name, body)
