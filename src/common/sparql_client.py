"""Async client for the ontology graph store's SPARQL endpoint."""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from src.common.errors import UpstreamError
from src.common.schemas import BindingValue, SparqlResponse, parse

logger = logging.getLogger(__name__)

SPARQL_JSON = "application/sparql-results+json"


class SparqlClient:
    """Posts form-encoded ``query`` requests and returns JSON result bodies.

    The underlying :class:`httpx.AsyncClient` can be shared; when none is
    given the client owns one and closes it in :meth:`aclose`.
    """

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "SparqlClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def forward(self, query: str, *, timeout: Optional[float] = None) -> httpx.Response:
        """Send *query* and return the raw response whatever its status."""
        return await self._client.post(
            self._url,
            data={"query": query},
            headers={"Accept": SPARQL_JSON},
            timeout=timeout or self._timeout,
        )

    async def query(self, query: str) -> Any:
        """Run *query* and return the decoded JSON body.

        Raises:
            UpstreamError: On a non-200 answer, a timeout or a transport error.
        """
        try:
            response = await self.forward(query)
        except httpx.HTTPError as exc:
            logger.error("SPARQL request to %s failed: %s", self._url, exc)
            raise UpstreamError(f"SPARQL request failed: {exc}") from exc

        if response.status_code != 200:
            raise UpstreamError(
                f"SPARQL request failed with status {response.status_code}: {response.text}",
                status=response.status_code,
                body=response.text,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                "SPARQL response is not JSON", status=response.status_code, body=response.text
            ) from exc

    async def select(self, query: str) -> list[dict[str, BindingValue]]:
        """Run a SELECT query and return its ``results.bindings``."""
        body = await self.query(query)
        return parse(SparqlResponse, body, "SPARQL").results.bindings
