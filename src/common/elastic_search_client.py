"""Thin wrapper around the official Elasticsearch client.

Exposes the index-store primitives used by the indexing, ingest and search
code:

* scroll – :py:meth:`open_scroll` / :py:meth:`next_scroll` /
  :py:meth:`close_scroll`, plus :py:class:`Scroll` and :py:meth:`scroll_map`
  which guarantee the scroll is closed on every exit path.
* :py:meth:`bulk` – newline-delimited index/delete instructions.
* :py:meth:`percolate` – find the stored term queries matching a document.
* index lifecycle and single-document CRUD.

No call is retried here.  API and transport failures surface as
:class:`~src.common.errors.UpstreamError`; a 404 on a single-document lookup
is reported as ``None``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Optional

from elasticsearch import ApiError, Elasticsearch, NotFoundError, TransportError

from src.common.errors import IndexingError, SearchStoreConnectionError, UpstreamError
from src.common.mappings import documents_mapping, terms_mapping
from src.common.schemas import (
    CloseScrollResponse,
    CountResponse,
    PutDocumentResponse,
    ScrollResponse,
    SuggestTermsResponse,
    parse,
)

logger = logging.getLogger(__name__)

DEFAULT_SCROLL_TIMEOUT_MINUTES = 60
DEFAULT_SCROLL_PAGE_SIZE = 500


def _body(response: Any) -> Any:
    return getattr(response, "body", response)


def index_action(index: str, doc_id: str, document: dict[str, Any]) -> list[dict[str, Any]]:
    """Return the two bulk lines that (over)write *document* under *doc_id*."""
    return [{"index": {"_index": index, "_id": doc_id}}, document]


def delete_action(index: str, doc_id: str) -> list[dict[str, Any]]:
    return [{"delete": {"_index": index, "_id": doc_id}}]


@dataclass(frozen=True)
class ScrollPage:
    """Cursor issued by the store together with the page of hits it came with."""

    cursor: str
    hits: list[dict[str, Any]]


class Scroll:
    """An open scroll over a whole index.

    Use as a context manager and iterate for pages of hits::

        with client.scroll("documents", includes=["uuid"]) as pages:
            for hits in pages:
                ...

    The most recently issued cursor is closed exactly once on exit, whether
    the loop finished, broke out early or raised.
    """

    def __init__(
        self,
        client: "ElasticSearchClient",
        index: str,
        includes: Optional[list[str]] = None,
        scroll_timeout: int = DEFAULT_SCROLL_TIMEOUT_MINUTES,
        size: int = DEFAULT_SCROLL_PAGE_SIZE,
    ) -> None:
        self._client = client
        self._index = index
        self._includes = includes
        self._scroll_timeout = scroll_timeout
        self._size = size
        self._page: Optional[ScrollPage] = None

    def __enter__(self) -> "Scroll":
        self._page = self._client.open_scroll(
            self._index,
            includes=self._includes,
            scroll_timeout=self._scroll_timeout,
            size=self._size,
        )
        return self

    def __iter__(self) -> Iterator[list[dict[str, Any]]]:
        if self._page is None:
            raise RuntimeError("Scroll must be entered before iterating")
        while self._page.hits:
            yield self._page.hits
            # Stores may issue a new cursor with every page.
            self._page = self._client.next_scroll(
                self._page.cursor, scroll_timeout=self._scroll_timeout
            )

    def __exit__(self, *exc_info: Any) -> None:
        if self._page is None:
            return
        cursor = self._page.cursor
        self._page = None
        if exc_info[0] is None:
            self._client.close_scroll(cursor)
            return
        try:
            self._client.close_scroll(cursor)
        except IndexingError:
            # The scan's own failure is the one the caller sees.
            logger.exception("Failed to close scroll %s after an error", cursor)


class ElasticSearchClient:
    """High-level helper for the documents and terms indices."""

    def __init__(
        self,
        hosts: list[str] | str = "http://localhost:9200",
        *,
        request_timeout: int = 30,
        client: Optional[Elasticsearch] = None,
    ) -> None:
        """Instantiate the client and verify connectivity.

        Args:
            hosts: Single host or list of hosts where the search store is available.
            request_timeout: Default per-request timeout in seconds.
            client: Pre-built low-level client; skips the connectivity check.

        Raises:
            SearchStoreConnectionError: If the cluster is unreachable.
        """
        if client is not None:
            self._client = client
            return

        self._client = Elasticsearch(hosts, request_timeout=request_timeout)

        # The store may still be starting – retry a few times
        for attempt in range(6):  # ~30 s total
            try:
                if self._client.ping():
                    break
            except TransportError:
                pass

            if attempt == 5:
                raise SearchStoreConnectionError(
                    f"Unable to connect to the search store at {hosts}"
                )

            logger.info("Search store ping failed (attempt %d/6); retrying in 5s…", attempt + 1)
            time.sleep(5)

    def _call(self, what: str, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return _body(fn(**kwargs))
        except ApiError as exc:
            logger.error(
                "%s failed, statusCode: %s, body: %r", what, exc.status_code, exc.body
            )
            raise UpstreamError(
                f"{what} failed with status {exc.status_code}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except TransportError as exc:
            logger.error("%s failed: %s", what, exc)
            raise UpstreamError(f"{what} failed: {exc}") from exc

    def ping(self, timeout: float = 5.0) -> bool:
        try:
            return bool(self._client.options(request_timeout=timeout).ping())
        except TransportError:
            return False

    # ------------------------------------------------------------------
    # Scroll
    # ------------------------------------------------------------------

    def open_scroll(
        self,
        index: str,
        *,
        includes: Optional[list[str]] = None,
        scroll_timeout: int = DEFAULT_SCROLL_TIMEOUT_MINUTES,
        size: int = DEFAULT_SCROLL_PAGE_SIZE,
    ) -> ScrollPage:
        """Start a full scan of *index* and return the first page."""
        raw = self._call(
            f"POST {index}/_search?scroll",
            self._client.search,
            index=index,
            scroll=f"{scroll_timeout}m",
            body={"_source": {"includes": includes or ["*"]}, "size": size},
        )
        response = parse(ScrollResponse, raw, "open scroll")
        return ScrollPage(response.scroll_id, response.hits.hits)

    def next_scroll(
        self, cursor: str, *, scroll_timeout: int = DEFAULT_SCROLL_TIMEOUT_MINUTES
    ) -> ScrollPage:
        """Fetch the next page; *cursor* must come from the previous page."""
        raw = self._call(
            "POST _search/scroll",
            self._client.scroll,
            scroll_id=cursor,
            scroll=f"{scroll_timeout}m",
        )
        response = parse(ScrollResponse, raw, "next scroll")
        return ScrollPage(response.scroll_id, response.hits.hits)

    def close_scroll(self, cursor: str) -> CloseScrollResponse:
        """Release the server-side scroll context; closing twice is harmless."""
        try:
            raw = _body(self._client.clear_scroll(scroll_id=cursor))
        except NotFoundError as exc:
            # Already expired or cleared.
            raw = exc.body if isinstance(exc.body, dict) else {}
            raw = {"succeeded": True, "num_freed": 0, **raw}
        except ApiError as exc:
            raise UpstreamError(
                f"DELETE _search/scroll failed with status {exc.status_code}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except TransportError as exc:
            raise UpstreamError(f"DELETE _search/scroll failed: {exc}") from exc
        return parse(CloseScrollResponse, raw, "close scroll")

    def scroll(
        self,
        index: str,
        *,
        includes: Optional[list[str]] = None,
        scroll_timeout: int = DEFAULT_SCROLL_TIMEOUT_MINUTES,
        size: int = DEFAULT_SCROLL_PAGE_SIZE,
    ) -> Scroll:
        return Scroll(self, index, includes, scroll_timeout, size)

    def scroll_map(
        self,
        index: str,
        handler: Callable[[dict[str, Any]], None],
        *,
        includes: Optional[list[str]] = None,
        scroll_timeout: int = DEFAULT_SCROLL_TIMEOUT_MINUTES,
        size: int = DEFAULT_SCROLL_PAGE_SIZE,
    ) -> int:
        """Apply *handler* to every hit of *index*, page by page.

        Returns:
            Number of hits visited.
        """
        visited = 0
        with self.scroll(
            index, includes=includes, scroll_timeout=scroll_timeout, size=size
        ) as pages:
            for hits in pages:
                for hit in hits:
                    handler(hit)
                    visited += 1
        return visited

    # ------------------------------------------------------------------
    # Bulk / percolate / search
    # ------------------------------------------------------------------

    def bulk(self, index: str, operations: list[dict[str, Any]]) -> dict[str, Any]:
        """Submit newline-delimited index/delete instructions in one request.

        A non-2xx answer fails the whole batch.  Per-item failures inside a
        2xx answer are logged and left to the caller.
        """
        raw = self._call(
            "POST _bulk", self._client.bulk, index=index, operations=operations
        )
        if raw.get("errors"):
            failed = [
                item
                for item in raw.get("items", [])
                if any("error" in result for result in item.values())
            ]
            logger.warning("Bulk request into '%s' had %d failed items.", index, len(failed))
        return raw

    def bulk_delete(self, index: str, ids: list[str]) -> dict[str, Any]:
        operations: list[dict[str, Any]] = []
        for doc_id in ids:
            operations.extend(delete_action(index, doc_id))
        return self.bulk(index, operations)

    def percolate(
        self,
        index: str,
        document: dict[str, Any],
        *,
        from_: int = 0,
        size: int = 300,
    ) -> dict[str, Any]:
        """Return the stored query-documents in *index* that match *document*."""
        body = {
            "query": {"percolate": {"field": "query", "document": document}},
            "from": from_,
            "size": size,
        }
        return self._call(
            f"POST {index}/_search (percolate)", self._client.search, index=index, body=body
        )

    def search(self, index: str, body: dict[str, Any]) -> dict[str, Any]:
        return self._call(f"POST {index}/_search", self._client.search, index=index, body=body)

    def suggest_terms(self, index: str, prefix: str) -> list[str]:
        """Return completion suggestions for *prefix* from the terms index."""
        raw = self.search(
            index,
            {"suggest": {"termSuggest": {"prefix": prefix, "completion": {"field": "suggest"}}}},
        )
        response = parse(SuggestTermsResponse, raw, "suggest terms")
        if not response.suggest.term_suggest:
            return []
        return [option.text for option in response.suggest.term_suggest[0].options]

    # ------------------------------------------------------------------
    # Index lifecycle
    # ------------------------------------------------------------------

    def create_index_if_absent(self, index: str, body: dict[str, Any]) -> bool:
        """Create *index*; an "already exists" answer counts as success.

        Returns:
            ``True`` if the index was created by this call.
        """
        try:
            self._client.indices.create(index=index, body=body)
        except ApiError as exc:
            error = exc.body.get("error") if isinstance(exc.body, dict) else None
            error_type = error.get("type") if isinstance(error, dict) else error
            if error_type == "resource_already_exists_exception":
                logger.info("Index '%s' already exists; skipping creation.", index)
                return False
            logger.error(
                "PUT %s failed, statusCode: %s, body: %r", index, exc.status_code, exc.body
            )
            raise UpstreamError(
                error_type or f"Unexpected {exc.status_code} response",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except TransportError as exc:
            raise UpstreamError(f"PUT {index} failed: {exc}") from exc
        logger.info("Created index '%s'.", index)
        return True

    def create_documents_index(self, index: str) -> bool:
        return self.create_index_if_absent(index, documents_mapping)

    def create_terms_index(self, index: str) -> bool:
        return self.create_index_if_absent(index, terms_mapping)

    def index_exists(self, index: str) -> bool:
        return bool(self._call(f"HEAD {index}", self._client.indices.exists, index=index))

    def refresh_index(self, index: str) -> None:
        self._call(f"POST {index}/_refresh", self._client.indices.refresh, index=index)

    def delete_index(self, index: str) -> None:
        try:
            self._client.indices.delete(index=index)
            logger.info("Deleted index '%s'.", index)
        except NotFoundError:
            pass
        except ApiError as exc:
            raise UpstreamError(
                f"DELETE {index} failed with status {exc.status_code}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except TransportError as exc:
            raise UpstreamError(f"DELETE {index} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add_document(self, index: str, document: dict[str, Any]) -> dict[str, Any]:
        """Index *document* under a store-generated id."""
        return self._call(
            f"POST {index}/_doc", self._client.index, index=index, document=document
        )

    def put_document(
        self, index: str, doc_id: str, document: dict[str, Any]
    ) -> PutDocumentResponse:
        """Write *document* under *doc_id*, overwriting any previous version."""
        raw = self._call(
            f"POST {index}/_doc/{doc_id}",
            self._client.index,
            index=index,
            id=doc_id,
            document=document,
        )
        return parse(PutDocumentResponse, raw, "put document")

    def get_document(self, index: str, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            return _body(self._client.get(index=index, id=doc_id))
        except NotFoundError:
            return None
        except ApiError as exc:
            raise UpstreamError(
                f"GET {index}/_doc/{doc_id} failed with status {exc.status_code}",
                status=exc.status_code,
                body=exc.body,
            ) from exc
        except TransportError as exc:
            raise UpstreamError(f"GET {index}/_doc/{doc_id} failed: {exc}") from exc

    def update_document(self, index: str, doc_id: str, doc: dict[str, Any]) -> dict[str, Any]:
        """Merge *doc* into the stored document (partial update)."""
        return self._call(
            f"POST {index}/_update/{doc_id}",
            self._client.update,
            index=index,
            id=doc_id,
            doc=doc,
        )

    def count(self, index: str) -> int:
        raw = self._call(f"GET {index}/_count", self._client.count, index=index)
        return parse(CountResponse, raw, "count").count

    def delete_by_query(self, index: str, query: dict[str, Any]) -> dict[str, Any]:
        return self._call(
            f"POST {index}/_delete_by_query",
            self._client.delete_by_query,
            index=index,
            query=query,
        )
