"""Content server connector: paginated item listing and per-item fetch.

Uses the content delivery REST API (v1.1) via httpx. Two listing protocols
are supported depending on server version:

* scroll: the first page returns a scroll token that is reused, unchanged,
  on every later page; pagination ends on an empty page.
* offset: pages are addressed by `offset` until `totalResults` is reached.

A failed listing page ends pagination and the items gathered so far are
returned. Item fetches are all-or-nothing.
"""

from __future__ import annotations

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import httpx

from ocesync.exceptions import ItemFetchError, ListingError

logger = logging.getLogger(__name__)

API_PATH = "api/v1.1/items"
DEFAULT_PAGE_SIZE = 10
# Matches every item; the scroll API requires a query
DEFAULT_SCROLL_QUERY = '(name ne ".*")'


def sanitize_type(item: Dict[str, Any]) -> Dict[str, Any]:
    """Strip hyphens from the item type; hyphenated type names break downstream indexing."""
    item_type = item.get("type")
    if isinstance(item_type, str):
        item["type"] = item_type.replace("-", "")
    return item


class ContentConnector:
    def __init__(
        self,
        *,
        content_server: str,
        channel_token: str,
        authorization: str = "",
        limit: Optional[int] = 100,
        query: Optional[str] = None,
        protocol: Literal["scroll", "offset"] = "scroll",
        preview: bool = False,
        strict_listing: bool = False,
        proxy_url: Optional[str] = None,
        timeout: float = 60.0,
        debug_dir: Optional[Path] = None,
    ) -> None:
        self.content_server = (content_server or "").rstrip("/")
        self.channel_token = channel_token
        self.authorization = authorization
        self.page_size = limit if limit is not None and limit > 0 else DEFAULT_PAGE_SIZE
        self.query = query or None
        self.protocol = protocol
        self.preview = preview
        self.strict_listing = strict_listing
        self.proxy_url = proxy_url
        self.timeout = timeout
        self.debug_dir = debug_dir

    @property
    def mode(self) -> str:
        return "preview" if self.preview else "published"

    @property
    def items_url(self) -> str:
        return f"{self.content_server}/content/{self.mode}/{API_PATH}"

    def headers(self) -> Dict[str, str]:
        h = {"Accept": "*/*", "User-Agent": "oracle/ocesync"}
        if self.authorization:
            h["Authorization"] = self.authorization
        return h

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            proxy=self.proxy_url or None,
            headers=self.headers(),
        )

    def reset_debug_dir(self) -> None:
        """Recreate an empty debug directory for this run's JSON dumps."""
        if self.debug_dir is None:
            return
        shutil.rmtree(self.debug_dir, ignore_errors=True)
        self.debug_dir.mkdir(parents=True, exist_ok=True)

    def _dump(self, name: str, payload: Any) -> None:
        if self.debug_dir is None:
            return
        self.debug_dir.mkdir(parents=True, exist_ok=True)
        (self.debug_dir / name).write_text(json.dumps(payload, indent=2), encoding="utf-8")

    async def _get_json(self, client: httpx.AsyncClient, url: str, params: Dict[str, Any]) -> Any:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp.json()

    def _page_failed(self, url: str, error: Exception) -> None:
        if self.strict_listing:
            raise ListingError(f"Failed downloading item list using {url}: {error}", url=url) from error
        # Lenient policy: treat the failed page as the end of the listing
        logger.warning("Failed downloading item list using %s: %s", url, error)

    async def list_items(self) -> List[Dict[str, Any]]:
        """Return every item summary matching the configured query, in listing order."""
        logger.info("Downloading channel asset list (%s protocol)", self.protocol)
        async with self._client() as client:
            if self.protocol == "offset":
                items = await self._list_offset(client)
            else:
                items = await self._list_scroll(client)
        items = [sanitize_type(it) for it in items if isinstance(it, dict)]
        logger.info("Finished downloading channel asset list: %d items", len(items))
        self._dump("items.json", items)
        return items

    async def _list_scroll(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        page_size = self.page_size
        scroll_id = ""
        while True:
            params: Dict[str, Any] = {
                "limit": page_size,
                "scroll": "true",
                "orderBy": "id:asc",
                "channelToken": self.channel_token,
                "q": self.query or DEFAULT_SCROLL_QUERY,
            }
            if scroll_id:
                params["scrollId"] = scroll_id
            logger.debug("GET %s %s", self.items_url, params)
            try:
                data = await self._get_json(client, self.items_url, params)
            except (httpx.HTTPError, ValueError) as e:
                self._page_failed(self.items_url, e)
                break

            count = data.get("count") if isinstance(data, dict) else None
            if not count:
                break
            items.extend(data.get("items") or [])
            # The token from the first page stays valid for the whole scroll
            if not scroll_id:
                scroll_id = data.get("scrollId") or ""
            server_limit = data.get("limit")
            if isinstance(server_limit, int) and 0 < server_limit < page_size:
                page_size = server_limit
        return items

    async def _list_offset(self, client: httpx.AsyncClient) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        offset = 0
        while True:
            params: Dict[str, Any] = {
                "limit": self.page_size,
                "offset": offset,
                "totalResults": "true",
                "orderBy": "id:asc",
                "channelToken": self.channel_token,
            }
            if self.query:
                params["q"] = self.query
            logger.debug("GET %s %s", self.items_url, params)
            try:
                data = await self._get_json(client, self.items_url, params)
            except (httpx.HTTPError, ValueError) as e:
                self._page_failed(self.items_url, e)
                break
            if not isinstance(data, dict):
                break

            page = data.get("items") or []
            items.extend(page)
            offset += self.page_size
            total = data.get("totalResults")
            if not page or not data.get("hasMore", False):
                break
            if isinstance(total, int) and offset >= total:
                break
        return items

    async def fetch_item(self, item_id: str, client: Optional[httpx.AsyncClient] = None) -> Dict[str, Any]:
        """Fetch the fully expanded record for one item."""
        url = f"{self.items_url}/{item_id}"
        params = {"channelToken": self.channel_token, "expand": "all"}
        try:
            if client is None:
                async with self._client() as own_client:
                    item = await self._get_json(own_client, url, params)
            else:
                item = await self._get_json(client, url, params)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Download of item %s with URL %s failed: %s", item_id, url, e)
            raise ItemFetchError(f"Download of item {item_id} failed: {e}", url=url) from e

        if isinstance(item, dict):
            sanitize_type(item)
        self._dump(f"{item_id}.json", item)
        return item

    async def fetch_items(self, item_ids: List[str]) -> List[Dict[str, Any]]:
        """Fetch all items concurrently. The first failure fails the whole batch."""
        async with self._client() as client:
            return list(await asyncio.gather(*(self.fetch_item(i, client) for i in item_ids)))

    async def fetch_all(self) -> List[Dict[str, Any]]:
        """List the channel, then fetch every listed item in full."""
        self.reset_debug_dir()
        summaries = await self.list_items()
        ids = [str(s["id"]) for s in summaries if s.get("id") is not None]
        return await self.fetch_items(ids)
