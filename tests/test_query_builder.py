"""Unit tests for the keyword search body builder."""

from __future__ import annotations

from src.search.query_builder import (
    DEFAULT_SEARCH_FIELDS,
    SearchOptions,
    build_search_document,
    keyword_query,
    sort_clause,
)


class TestBuildSearchDocument:
    def test_full_document(self) -> None:
        options = SearchOptions(
            keywords=["ocean", "sea"],
            fields=["title"],
            terms=["alpha"],
            term_uris=["uri://alpha"],
            refereed=True,
            endorsed=True,
            sort=["title:asc"],
            from_=0,
            size=20,
        )

        assert build_search_document(options) == {
            "from": 0,
            "size": 20,
            "query": {
                "bool": {
                    "must": {
                        "query_string": {
                            "fields": ["title"],
                            "query": '"ocean" "sea"',
                        }
                    },
                    "filter": [
                        {
                            "nested": {
                                "path": "_terms",
                                "query": {"match": {"_terms.label": "alpha"}},
                            }
                        },
                        {
                            "nested": {
                                "path": "_terms",
                                "query": {"match": {"_terms.uri": "uri://alpha"}},
                            }
                        },
                        {"exists": {"field": "dc_description_refereed"}},
                        {"exists": {"field": "obps_endorsementExternal_externalEndorsedBy"}},
                    ],
                }
            },
            "highlight": {"fields": {"_bitstreamText": {}}},
            "sort": [{"title": "asc"}, "_score"],
            "_source": {"excludes": ["_bitstreamText", "bitstreams", "metadata"]},
        }

    def test_no_keywords_and_no_filters_is_match_all(self) -> None:
        body = build_search_document(SearchOptions())
        assert body["query"] == {"match_all": {}}
        assert body["sort"] == ["_score"]
        assert body["from"] == 0
        assert body["size"] == 20

    def test_filters_without_keywords_have_no_must(self) -> None:
        body = build_search_document(SearchOptions(refereed=True))
        assert body["query"] == {
            "bool": {"filter": [{"exists": {"field": "dc_description_refereed"}}]}
        }

    def test_default_fields(self) -> None:
        body = build_search_document(SearchOptions(keywords=["ocean"]))
        assert body["query"]["bool"]["must"]["query_string"]["fields"] == DEFAULT_SEARCH_FIELDS

    def test_source_excludes_always_present(self) -> None:
        for options in (SearchOptions(), SearchOptions(keywords=["x"], endorsed=True)):
            excludes = build_search_document(options)["_source"]["excludes"]
            assert {"_bitstreamText", "bitstreams", "metadata"} <= set(excludes)


class TestHelpers:
    def test_keyword_quotes_are_escaped(self) -> None:
        assert keyword_query(['say "hi"', "sea"]) == '"say \\"hi\\"" "sea"'

    def test_sort_defaults_to_ascending(self) -> None:
        assert sort_clause(["year", "title:DESC"]) == [{"year": "asc"}, {"title": "desc"}, "_score"]

    def test_sort_skips_empty_field(self) -> None:
        assert sort_clause([":desc"]) == ["_score"]
