"""Unit tests for the Elasticsearch wrapper, against a mocked low-level client."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from elasticsearch import ConnectionError as ESConnectionError

from src.common.elastic_search_client import ElasticSearchClient, index_action
from src.common.errors import ResponseValidationError, UpstreamError
from src.common.mappings import documents_mapping, terms_mapping
from tests.helpers import scroll_page


class TestScroll:
    def test_scroll_map_visits_every_hit_and_closes_once(
        self, es: ElasticSearchClient, raw_es: MagicMock
    ) -> None:
        raw_es.search.return_value = scroll_page("s1", "a", "b")
        raw_es.scroll.side_effect = [scroll_page("s2", "c"), scroll_page("s3")]
        raw_es.clear_scroll.return_value = {"succeeded": True, "num_freed": 1}

        seen: list[str] = []
        visited = es.scroll_map("documents", lambda hit: seen.append(hit["_id"]))

        assert visited == 3
        assert seen == ["a", "b", "c"]
        # Each page continues from the cursor the previous page returned.
        assert [c.kwargs["scroll_id"] for c in raw_es.scroll.call_args_list] == ["s1", "s2"]
        raw_es.clear_scroll.assert_called_once_with(scroll_id="s3")

    def test_scroll_is_closed_when_handler_raises(
        self, es: ElasticSearchClient, raw_es: MagicMock
    ) -> None:
        raw_es.search.return_value = scroll_page("s1", "a", "b")
        raw_es.scroll.return_value = scroll_page("s2")
        raw_es.clear_scroll.return_value = {"succeeded": True, "num_freed": 1}

        def handler(hit: dict) -> None:
            if hit["_id"] == "b":
                raise ValueError("boom")

        with pytest.raises(ValueError):
            es.scroll_map("documents", handler)

        raw_es.clear_scroll.assert_called_once_with(scroll_id="s1")
        raw_es.scroll.assert_not_called()

    def test_close_failure_does_not_mask_handler_error(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.search.return_value = scroll_page("s1", "a")
        raw_es.clear_scroll.side_effect = api_error(500, {"error": "boom"})

        def handler(hit: dict) -> None:
            raise ValueError("handler failed")

        with pytest.raises(ValueError, match="handler failed"):
            es.scroll_map("documents", handler)
        raw_es.clear_scroll.assert_called_once_with(scroll_id="s1")

    def test_close_failure_after_clean_scan_is_raised(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.search.return_value = scroll_page("s1", "a")
        raw_es.scroll.return_value = scroll_page("s2")
        raw_es.clear_scroll.side_effect = api_error(500, {"error": "boom"})

        with pytest.raises(UpstreamError) as excinfo:
            es.scroll_map("documents", lambda hit: None)
        assert excinfo.value.status == 500

    def test_open_scroll_request(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.search.return_value = scroll_page("s1")
        raw_es.clear_scroll.return_value = {"succeeded": True, "num_freed": 1}

        es.scroll_map("documents", lambda hit: None, includes=["uuid"])

        raw_es.search.assert_called_once_with(
            index="documents",
            scroll="60m",
            body={"_source": {"includes": ["uuid"]}, "size": 500},
        )

    def test_close_scroll_treats_not_found_as_ack(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.clear_scroll.side_effect = api_error(404, {"succeeded": True, "num_freed": 0})
        assert es.close_scroll("gone").succeeded is True

    def test_malformed_scroll_page_raises_validation_error(
        self, es: ElasticSearchClient, raw_es: MagicMock
    ) -> None:
        raw_es.search.return_value = {"hits": {"hits": []}}
        with pytest.raises(ResponseValidationError):
            es.open_scroll("documents")


class TestCreateIndex:
    def test_created(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        assert es.create_terms_index("terms") is True
        raw_es.indices.create.assert_called_once_with(index="terms", body=terms_mapping)

    def test_already_exists_is_success(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.indices.create.side_effect = api_error(
            400, {"error": {"type": "resource_already_exists_exception"}, "status": 400}
        )
        assert es.create_documents_index("documents") is False
        raw_es.indices.create.assert_called_once_with(index="documents", body=documents_mapping)

    def test_other_errors_are_fatal(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.indices.create.side_effect = api_error(
            400, {"error": {"type": "mapper_parsing_exception"}, "status": 400}
        )
        with pytest.raises(UpstreamError) as excinfo:
            es.create_documents_index("documents")
        assert excinfo.value.status == 400


class TestDocuments:
    def test_get_document_not_found_is_none(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.get.side_effect = api_error(404, {"found": False})
        assert es.get_document("documents", "missing") is None

    def test_put_document_overwrites_by_id(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.index.return_value = {"_id": "doc-1", "result": "updated"}
        response = es.put_document("documents", "doc-1", {"uuid": "doc-1"})
        assert response.result == "updated"
        raw_es.index.assert_called_once_with(
            index="documents", id="doc-1", document={"uuid": "doc-1"}
        )

    def test_update_document_is_partial(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        es.update_document("documents", "doc-1", {"_terms": []})
        raw_es.update.assert_called_once_with(index="documents", id="doc-1", doc={"_terms": []})

    def test_count(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.count.return_value = {"count": 7, "_shards": {}}
        assert es.count("documents") == 7

    def test_api_error_becomes_upstream_error(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.search.side_effect = api_error(503, {"error": "unavailable"})
        with pytest.raises(UpstreamError) as excinfo:
            es.search("documents", {"query": {"match_all": {}}})
        assert excinfo.value.status == 503
        assert excinfo.value.body == {"error": "unavailable"}

    def test_transport_error_becomes_upstream_error(
        self, es: ElasticSearchClient, raw_es: MagicMock
    ) -> None:
        raw_es.count.side_effect = ESConnectionError("connection refused")
        with pytest.raises(UpstreamError):
            es.count("documents")


class TestBulkAndPercolate:
    def test_bulk_sends_operations(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.bulk.return_value = {"errors": False, "items": []}
        operations = index_action("terms", "t1", {"label": "ocean"})
        es.bulk("terms", operations)
        raw_es.bulk.assert_called_once_with(
            index="terms",
            operations=[{"index": {"_index": "terms", "_id": "t1"}}, {"label": "ocean"}],
        )

    def test_bulk_item_errors_do_not_raise(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.bulk.return_value = {
            "errors": True,
            "items": [{"index": {"_id": "t1", "error": {"type": "mapper_parsing_exception"}}}],
        }
        assert es.bulk("terms", [])["errors"] is True

    def test_percolate_request(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.search.return_value = {"hits": {"hits": []}}
        es.percolate("terms", {"title": "t", "contents": "c"})
        raw_es.search.assert_called_once_with(
            index="terms",
            body={
                "query": {
                    "percolate": {"field": "query", "document": {"title": "t", "contents": "c"}}
                },
                "from": 0,
                "size": 300,
            },
        )

    def test_suggest_terms(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.search.return_value = {
            "suggest": {"termSuggest": [{"text": "sea", "options": [{"text": "seawater"}]}]}
        }
        assert es.suggest_terms("terms", "sea") == ["seawater"]


class TestPing:
    def test_ping_uses_short_timeout(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.options.return_value.ping.return_value = True
        assert es.ping(timeout=2.0) is True
        raw_es.options.assert_called_once_with(request_timeout=2.0)

    def test_ping_transport_failure_is_false(
        self, es: ElasticSearchClient, raw_es: MagicMock
    ) -> None:
        raw_es.options.return_value.ping.side_effect = ESConnectionError("down")
        assert es.ping() is False


class TestIndexMaintenance:
    def test_delete_index_ignores_missing(
        self, es: ElasticSearchClient, raw_es: MagicMock, api_error
    ) -> None:
        raw_es.indices.delete.side_effect = api_error(404, {"error": "index_not_found_exception"})
        es.delete_index("documents")

    def test_index_exists_and_refresh(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.indices.exists.return_value = True
        assert es.index_exists("documents") is True
        es.refresh_index("documents")
        raw_es.indices.refresh.assert_called_once_with(index="documents")

    def test_bulk_delete(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.bulk.return_value = {"errors": False, "items": []}
        es.bulk_delete("terms", ["t1", "t2"])
        assert raw_es.bulk.call_args.kwargs["operations"] == [
            {"delete": {"_index": "terms", "_id": "t1"}},
            {"delete": {"_index": "terms", "_id": "t2"}},
        ]

    def test_delete_by_query(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.delete_by_query.return_value = {"deleted": 3}
        query = {"term": {"namedGraphUri": "http://g"}}
        assert es.delete_by_query("terms", query) == {"deleted": 3}
        raw_es.delete_by_query.assert_called_once_with(index="terms", query=query)

    def test_add_document(self, es: ElasticSearchClient, raw_es: MagicMock) -> None:
        raw_es.index.return_value = {"_id": "generated", "result": "created"}
        assert es.add_document("documents", {"uuid": "x"})["_id"] == "generated"
