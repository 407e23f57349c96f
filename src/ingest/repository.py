"""repository.py
Read-only async client for the source repository's REST API and RSS feed.

Item and metadata lookups answer ``None`` for unknown UUIDs.  Bitstream
downloads are retried on transient failures with *tenacity*; nothing else is.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from src.common.entities import DocumentItem, Feed, Metadata
from src.common.errors import UpstreamError
from src.common.schemas import parse, parse_list

logger = logging.getLogger(__name__)

HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": "ocean-docs-indexer/0.1",
}


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, httpx.TransportError)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(element: ET.Element, name: str) -> Optional[str]:
    for child in element:
        if _local_name(child.tag) == name and child.text:
            return child.text.strip()
    return None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def parse_feed(raw_xml: str) -> Feed:
    """Parse an RSS 2.0 document into the channel date and its item links/dates."""
    root = ET.fromstring(raw_xml.strip())
    channel = root.find("channel")
    if channel is None:
        raise UpstreamError("RSS feed has no channel element", body=raw_xml)

    items: list[dict[str, Any]] = []
    for item in channel.iter("item"):
        link = _child_text(item, "link")
        item_date = _parse_date(_child_text(item, "pubDate"))
        if link is None or item_date is None:
            logger.warning("Skipping feed item without link or valid pubDate: %s", link)
            continue
        items.append({"link": link, "pub_date": item_date})

    return parse(
        Feed,
        {"pub_date": _parse_date(_child_text(channel, "pubDate")), "items": items},
        "RSS feed",
    )


class RepositoryClient:
    """Client for a DSpace-style repository.

    Args:
        endpoint: Repository base URL including protocol.
        client: Shared :class:`httpx.AsyncClient`; one is created when omitted.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ) -> None:
        self._endpoint = endpoint.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "RepositoryClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _get_json(self, path: str, **params: Any) -> Optional[Any]:
        try:
            response = await self._client.get(
                f"{self._endpoint}{path}", params=params or None, headers=HEADERS
            )
        except httpx.HTTPError as exc:
            raise UpstreamError(f"GET {path} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise UpstreamError(
                f"GET {path} failed with status {response.status_code}",
                status=response.status_code,
                body=response.text,
            )
        return response.json()

    async def find(self, key: str, value: str) -> list[DocumentItem]:
        """Items whose metadata field *key* equals *value*, metadata and bitstreams expanded."""
        path = "/rest/items/find-by-metadata-field"
        try:
            response = await self._client.post(
                f"{self._endpoint}{path}",
                params={"expand": "metadata,bitstreams"},
                json={"key": key, "value": value},
                headers=HEADERS,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"POST {path} failed: {exc}") from exc
        return parse_list(DocumentItem, response.json(), "find items")

    async def get_items(
        self, *, expand: str = "bitstreams,metadata", limit: int = 50, offset: int = 0
    ) -> list[DocumentItem]:
        body = await self._get_json("/rest/items", expand=expand, limit=limit, offset=offset)
        return parse_list(DocumentItem, body or [], "repository items")

    async def get_item(self, uuid: str) -> Optional[DocumentItem]:
        """Full item (metadata and bitstreams) or ``None`` if it does not exist."""
        body = await self._get_json(f"/rest/items/{uuid}", expand="bitstreams,metadata")
        return None if body is None else parse(DocumentItem, body, "repository item")

    async def get_metadata(self, uuid: str) -> Optional[list[Metadata]]:
        body = await self._get_json(f"/rest/items/{uuid}/metadata")
        return None if body is None else parse_list(Metadata, body, "item metadata")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _download(self, url: str) -> bytes:
        response = await self._client.get(url, headers={**HEADERS, "Accept": "*/*"})
        response.raise_for_status()
        return response.content

    async def get_bitstream(self, retrieve_link: str) -> bytes:
        """Download the binary behind a bitstream's ``retrieveLink``."""
        try:
            return await self._download(f"{self._endpoint}{retrieve_link}")
        except httpx.HTTPError as exc:
            raise UpstreamError(f"GET {retrieve_link} failed: {exc}") from exc

    async def get_feed(self) -> Feed:
        path = "/feed/rss_2.0/site"
        try:
            response = await self._client.get(
                f"{self._endpoint}{path}", headers={**HEADERS, "Accept": "application/xml"}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamError(f"GET {path} failed: {exc}") from exc
        return parse_feed(response.text)
