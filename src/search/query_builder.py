"""query_builder.py
Build the documents-index search body for a keyword search.

:func:`build_search_document` is pure: the same :class:`SearchOptions` always
produce the same body, with filters in a fixed order (term labels, term URIs,
refereed, endorsed).
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from src.common.mappings import BITSTREAM_TEXT_FIELD, TERMS_FIELD

DEFAULT_FROM = 0
DEFAULT_SIZE = 20

DEFAULT_SEARCH_FIELDS = [
    "dc_title",
    "dc_description_abstract",
    "dc_contributor_author",
    "dc_subject_other",
    BITSTREAM_TEXT_FIELD,
]

REFEREED_FIELD = "dc_description_refereed"
ENDORSED_FIELD = "obps_endorsementExternal_externalEndorsedBy"

SOURCE_EXCLUDES = [BITSTREAM_TEXT_FIELD, "bitstreams", "metadata"]


class SearchOptions(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    fields: list[str] = Field(default_factory=lambda: list(DEFAULT_SEARCH_FIELDS))
    terms: list[str] = Field(default_factory=list)
    term_uris: list[str] = Field(default_factory=list)
    sort: list[str] = Field(default_factory=list)
    from_: int = Field(DEFAULT_FROM, ge=0)
    size: int = Field(DEFAULT_SIZE, ge=0)
    synonyms: bool = False
    refereed: bool = False
    endorsed: bool = False


def keyword_query(keywords: list[str]) -> str:
    """Quote each keyword as a phrase; the phrases are OR-ed by ``query_string``."""
    phrases = []
    for keyword in keywords:
        escaped = keyword.replace("\\", "\\\\").replace('"', '\\"')
        phrases.append(f'"{escaped}"')
    return " ".join(phrases)


def _nested_term_filter(field: str, value: str) -> dict[str, Any]:
    return {
        "nested": {
            "path": TERMS_FIELD,
            "query": {"match": {f"{TERMS_FIELD}.{field}": value}},
        }
    }


def sort_clause(sort: list[str]) -> list[Any]:
    """``["title:desc", "year"]`` -> ``[{"title": "desc"}, {"year": "asc"}, "_score"]``."""
    clauses: list[Any] = []
    for entry in sort:
        field, _, direction = entry.partition(":")
        if not field:
            continue
        clauses.append({field: direction.lower() or "asc"})
    clauses.append("_score")
    return clauses


def build_search_document(options: SearchOptions) -> dict[str, Any]:
    filters: list[dict[str, Any]] = []
    filters.extend(_nested_term_filter("label", term) for term in options.terms)
    filters.extend(_nested_term_filter("uri", uri) for uri in options.term_uris)
    if options.refereed:
        filters.append({"exists": {"field": REFEREED_FIELD}})
    if options.endorsed:
        filters.append({"exists": {"field": ENDORSED_FIELD}})

    if options.keywords or filters:
        boolean: dict[str, Any] = {}
        if options.keywords:
            boolean["must"] = {
                "query_string": {
                    "fields": list(options.fields),
                    "query": keyword_query(options.keywords),
                }
            }
        if filters:
            boolean["filter"] = filters
        query: dict[str, Any] = {"bool": boolean}
    else:
        query = {"match_all": {}}

    return {
        "from": options.from_,
        "size": options.size,
        "query": query,
        "highlight": {"fields": {BITSTREAM_TEXT_FIELD: {}}},
        "sort": sort_clause(options.sort),
        "_source": {"excludes": list(SOURCE_EXCLUDES)},
    }
