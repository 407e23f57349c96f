"""Response fixtures shared by several test modules."""

from __future__ import annotations

from typing import Any


def percolate_hit(label: str, uri: str, terminology: str = "", graph: str = "") -> dict[str, Any]:
    return {
        "_id": uri,
        "_source": {
            "query": {
                "multi_match": {
                    "query": label,
                    "type": "phrase",
                    "fields": ["contents", "title"],
                }
            },
            "uri": uri,
            "source_terminology": terminology,
            "namedGraphUri": graph,
        },
    }


def percolate_response(*hits: dict[str, Any]) -> dict[str, Any]:
    return {"hits": {"total": {"value": len(hits)}, "hits": list(hits)}}


def scroll_page(scroll_id: str, *ids: str) -> dict[str, Any]:
    return {
        "_scroll_id": scroll_id,
        "hits": {"hits": [{"_id": i, "_source": {"uuid": i}} for i in ids]},
    }
