"""Index bodies for the documents and terms indices."""

from __future__ import annotations

from typing import Any

# Fields returned only on explicit request; large payloads.
BITSTREAM_TEXT_FIELD = "_bitstreamText"
TERMS_FIELD = "_terms"

_INDEX_SETTINGS: dict[str, Any] = {
    "number_of_shards": 1,
    "number_of_replicas": 0,
}

documents_mapping: dict[str, Any] = {
    "settings": _INDEX_SETTINGS,
    "mappings": {
        "properties": {
            "uuid": {"type": "keyword"},
            "handle": {"type": "keyword"},
            "lastModified": {"type": "keyword"},
            "metadata": {"type": "object", "enabled": False},
            "bitstreams": {"type": "object", "enabled": False},
            BITSTREAM_TEXT_FIELD: {"type": "text"},
            TERMS_FIELD: {
                "type": "nested",
                "properties": {
                    "label": {
                        "type": "text",
                        "fields": {"keyword": {"type": "keyword"}},
                    },
                    "uri": {"type": "keyword"},
                    "source_terminology": {"type": "keyword"},
                    "namedGraphUri": {"type": "keyword"},
                },
            },
        },
    },
}

# ``title`` and ``contents`` must be declared so that percolated documents
# are analysed the same way the stored phrase queries expect.
terms_mapping: dict[str, Any] = {
    "settings": _INDEX_SETTINGS,
    "mappings": {
        "properties": {
            "query": {"type": "percolator"},
            "title": {"type": "text"},
            "contents": {"type": "text"},
            "label": {"type": "text"},
            "suggest": {"type": "completion"},
            "uri": {"type": "keyword"},
            "source_terminology": {"type": "keyword"},
            "namedGraphUri": {"type": "keyword"},
        },
    },
}
