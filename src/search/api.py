"""api.py
HTTP surface over the documents and terms indices.

Endpoint                Method  Description
--------------------    ------  ---------------------------------------------
/search/keywords        GET     Keyword search with term/refereed/endorsed filters
/terms/suggest          GET     Completion suggestions from the terms index
/sparql                 POST    Pass-through proxy to the graph store
/health                 GET     Search-store reachability

Run with ``python -m src.search.api``.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import httpx
import uvicorn
from fastapi import APIRouter, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from src.common.elastic_search_client import ElasticSearchClient
from src.common.errors import IndexingError
from src.common.settings import Settings
from src.common.sparql_client import SparqlClient
from src.search.search_service import SearchService, parse_search_params
from src.search.synonyms import SynonymResolver

logger = logging.getLogger(__name__)

HEALTH_TIMEOUT = 2.0

router = APIRouter()


def _internal_error() -> JSONResponse:
    return JSONResponse({"error": "Internal Server Error"}, status_code=500)


@router.get("/search/keywords")
async def search_keywords(request: Request) -> Any:
    options = parse_search_params(request.query_params)
    if options is None:
        return {}

    service: SearchService = request.app.state.search_service
    try:
        return await service.search(options)
    except IndexingError:
        logger.exception("Keyword search failed for %s", options)
        return _internal_error()


@router.get("/terms/suggest")
async def suggest_terms(request: Request, input: str = Query("", max_length=200)) -> Any:
    if not input.strip():
        return {"suggestions": []}
    settings: Settings = request.app.state.settings
    es: ElasticSearchClient = request.app.state.es
    try:
        suggestions = await asyncio.to_thread(
            es.suggest_terms, settings.terms_index_name, input.strip()
        )
        return {"suggestions": suggestions}
    except IndexingError:
        logger.exception("Term suggestion failed for prefix %r", input)
        return _internal_error()


@router.post("/sparql")
async def sparql_proxy(request: Request) -> Response:
    query = (await request.body()).decode("utf-8")
    if not query:
        return PlainTextResponse("No query specified in request body", status_code=400)

    settings: Settings = request.app.state.settings
    sparql: SparqlClient = request.app.state.sparql
    try:
        upstream = await sparql.forward(query, timeout=settings.proxy_timeout)
    except httpx.TimeoutException:
        logger.error("SPARQL proxy timed out after %ss", settings.proxy_timeout)
        return PlainTextResponse("Bad Gateway", status_code=502)
    except httpx.HTTPError as exc:
        logger.error("SPARQL proxy request failed: %s", exc)
        return PlainTextResponse("Internal Server Error", status_code=500)

    content_type = upstream.headers.get("content-type")
    if not content_type:
        return PlainTextResponse("Bad Gateway", status_code=502)
    if upstream.status_code == 400:
        return Response(upstream.content, status_code=400, media_type=content_type)
    if upstream.status_code != 200:
        logger.error(
            "Unexpected graph store response: %d %s", upstream.status_code, upstream.text
        )
        return PlainTextResponse("Internal Server Error", status_code=500)
    return Response(upstream.content, status_code=200, media_type=content_type)


@router.get("/health")
async def health(request: Request) -> Any:
    es: ElasticSearchClient = request.app.state.es
    if await asyncio.to_thread(es.ping, timeout=HEALTH_TIMEOUT):
        return {"status": "ok"}
    return JSONResponse({"status": "unavailable"}, status_code=503)


def create_app(
    settings: Settings,
    es: Optional[ElasticSearchClient] = None,
    sparql: Optional[SparqlClient] = None,
) -> FastAPI:
    """Build the application; clients not supplied are created at start-up."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned_sparql = None
        if app.state.es is None:
            app.state.es = ElasticSearchClient(
                settings.es_host, request_timeout=settings.es_request_timeout
            )
        if app.state.sparql is None:
            owned_sparql = SparqlClient(settings.sparql_url, timeout=settings.sparql_timeout)
            app.state.sparql = owned_sparql
        app.state.search_service = SearchService(
            app.state.es,
            settings.documents_index_name,
            SynonymResolver(app.state.sparql),
        )
        try:
            yield
        finally:
            if owned_sparql is not None:
                await owned_sparql.aclose()

    app = FastAPI(title="Document search", lifespan=lifespan)
    app.state.settings = settings
    app.state.es = es
    app.state.sparql = sparql
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])
    app.include_router(router)
    return app


def main() -> None:
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(settings), host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    main()
