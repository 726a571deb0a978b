"""Digital asset binary synchronization.

Every digital asset contributes a native binary and, depending on the
renditions policy, some of its renditions. Two delivery modes exist:

* registry mode (`MediaSynchronizer`): binaries become File nodes through the
  host file fetcher. A durable cache maps each media key to the file node id
  and the asset's updatedDate, so unchanged binaries are not downloaded again.
* static mode (`StaticMediaDownloader`): binaries are written under a public
  directory and a public URL is stored on the record. Nothing is cached.

Failures are isolated per binary and returned as `MediaResult` values.
"""
from __future__ import annotations

import asyncio
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx

from ocesync.config import RenditionPolicy
from ocesync.exceptions import MediaDownloadError, ShapeError
from ocesync.host.base import Cache, FileFetcher
from ocesync.host.registry import NodeRegistry
from ocesync.processing.normalize import AssetRecord

logger = logging.getLogger(__name__)

FILE_NODE_ATTR = "fileNodeId"
STATIC_URL_ATTR = "staticURL"
CUSTOM_RENDITION = "customrendition"

_EXTENSION_RE = re.compile(r"\....$")


@dataclass
class MediaEntry:
    """One binary to synchronize for a digital asset."""

    key: str
    name: str
    url: str
    # The dict (asset record or rendition) that receives the resolved file node id
    reference: Dict[str, Any]
    static_name: str = ""
    static_subdir: str = ""


class MediaStatus(str, Enum):
    REUSED = "reused"
    DOWNLOADED = "downloaded"
    FAILED = "failed"


@dataclass
class MediaResult:
    asset_id: str
    key: str
    url: str
    status: MediaStatus
    file_node_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is not MediaStatus.FAILED


@dataclass
class MediaSummary:
    results: List[MediaResult] = field(default_factory=list)

    def count(self, status: MediaStatus) -> int:
        return sum(1 for r in self.results if r.status is status)

    @property
    def failed(self) -> List[MediaResult]:
        return [r for r in self.results if r.status is MediaStatus.FAILED]


def _rendition_url(rendition: Dict[str, Any]) -> str:
    try:
        return str(rendition["formats"][0]["links"][0]["href"])
    except (KeyError, IndexError, TypeError) as e:
        raise ShapeError(f"Rendition {rendition.get('name')} has no format link") from e


def select_renditions(renditions: List[Dict[str, Any]], policy: RenditionPolicy) -> List[Dict[str, Any]]:
    if policy == "none":
        return []
    if policy == "all":
        return list(renditions)
    return [r for r in renditions if r.get("type") == CUSTOM_RENDITION]


def get_media_list(
    record: Dict[str, Any],
    renditions: RenditionPolicy,
    static_root: Optional[str] = None,
    static_url_prefix: str = "",
) -> List[MediaEntry]:
    """Build the native + rendition media entries for one digital asset.

    In static mode (`static_root` set) the public URL of each entry is also
    written onto the record and the selected renditions.
    """
    base_key = f"oce-media-{record['id']}"
    file_name = record.get("name") or ""
    name = _EXTENSION_RE.sub("", file_name)

    entries = [
        MediaEntry(
            key=f"{base_key}-native",
            name=name,
            url=record.get("native") or "",
            reference=record,
            static_name=file_name,
        )
    ]
    if static_root:
        record[STATIC_URL_ATTR] = f"{static_url_prefix}/{static_root}/{file_name}"

    for rendition in select_renditions(record.get("renditions") or [], renditions):
        rendition_name = rendition.get("name", "")
        entries.append(
            MediaEntry(
                key=f"{base_key}{rendition_name}",
                name=f"{rendition_name}-{name}",
                url=_rendition_url(rendition),
                reference=rendition,
                static_name=file_name,
                static_subdir=rendition_name,
            )
        )
        if static_root:
            rendition[STATIC_URL_ATTR] = f"{static_url_prefix}/{static_root}/{rendition_name}/{file_name}"
    return entries


class MediaSynchronizer:
    """Registry-mode synchronizer backed by a durable cache."""

    def __init__(
        self,
        *,
        cache: Cache,
        fetcher: FileFetcher,
        registry: NodeRegistry,
        renditions: RenditionPolicy = "custom",
        authorization: str = "",
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher
        self.registry = registry
        self.renditions = renditions
        self.authorization = authorization

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": self.authorization} if self.authorization else {}

    async def sync_entry(self, entry: MediaEntry, asset_id: str, updated_date: Optional[str]) -> MediaResult:
        cached = await self.cache.get(entry.key)
        if cached and cached.get("updatedDate") == updated_date and cached.get(FILE_NODE_ATTR):
            file_node_id = cached[FILE_NODE_ATTR]
            if self.registry.touch(file_node_id):
                entry.reference[FILE_NODE_ATTR] = file_node_id
                logger.debug("Reusing cached file %s for %s", file_node_id, entry.key)
                return MediaResult(asset_id, entry.key, entry.url, MediaStatus.REUSED, file_node_id)
            logger.info("Cached file %s for %s is gone, downloading again", file_node_id, entry.key)

        if not entry.url:
            logger.warning("Media entry %s of asset %s has no source URL", entry.key, asset_id)
            return MediaResult(asset_id, entry.key, entry.url, MediaStatus.FAILED, error="missing source URL")

        logger.info("Downloading media file %s", entry.url)
        try:
            node = await self.fetcher.fetch(entry.url, headers=self._headers(), name=entry.name)
        except (MediaDownloadError, httpx.HTTPError, OSError) as e:
            logger.warning("Downloading media file %s for asset %s failed: %s", entry.url, asset_id, e)
            return MediaResult(asset_id, entry.key, entry.url, MediaStatus.FAILED, error=str(e))

        file_node_id = node["id"]
        await self.cache.set(entry.key, {FILE_NODE_ATTR: file_node_id, "updatedDate": updated_date})
        entry.reference[FILE_NODE_ATTR] = file_node_id
        return MediaResult(asset_id, entry.key, entry.url, MediaStatus.DOWNLOADED, file_node_id)

    async def sync_asset(self, record: AssetRecord) -> List[MediaResult]:
        data = record.data
        results: List[MediaResult] = []
        # Entries of one asset are handled in order
        for entry in get_media_list(data, self.renditions):
            results.append(await self.sync_entry(entry, record.id, data.get("updatedDate")))
        return results

    async def sync(self, records: List[AssetRecord]) -> MediaSummary:
        """Resolve every digital asset's binaries to file nodes, assets concurrently."""
        assets = [r for r in records if r.is_digital_asset]
        # Let every asset settle before failing so no task outlives the run
        per_asset = await asyncio.gather(*(self.sync_asset(r) for r in assets), return_exceptions=True)
        for outcome in per_asset:
            if isinstance(outcome, BaseException):
                raise outcome
        summary = MediaSummary([result for results in per_asset for result in results])  # type: ignore[union-attr]
        logger.info(
            "Media sync: %d reused, %d downloaded, %d failed",
            summary.count(MediaStatus.REUSED),
            summary.count(MediaStatus.DOWNLOADED),
            summary.count(MediaStatus.FAILED),
        )
        return summary


class StaticMediaDownloader:
    """Static-mode downloader writing binaries under `<public_dir>/<root_dir>`."""

    def __init__(
        self,
        *,
        public_dir: Path,
        root_dir: str = "assets",
        url_prefix: str = "",
        renditions: RenditionPolicy = "custom",
        authorization: str = "",
        proxy_url: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.public_dir = Path(public_dir)
        self.root_dir = root_dir
        self.url_prefix = url_prefix
        self.renditions = renditions
        self.authorization = authorization
        self.proxy_url = proxy_url
        self.timeout = timeout

    @property
    def storage_root(self) -> Path:
        return self.public_dir / self.root_dir

    def _client(self) -> httpx.AsyncClient:
        headers = {"Accept": "*/*", "User-Agent": "oracle/ocesync"}
        if self.authorization:
            headers["Authorization"] = self.authorization
        return httpx.AsyncClient(
            timeout=self.timeout,
            proxy=self.proxy_url or None,
            follow_redirects=True,
            headers=headers,
        )

    def prepare(self) -> Path:
        logger.info("Creating static asset directory %s", self.storage_root)
        self.storage_root.mkdir(parents=True, exist_ok=True)
        return self.storage_root

    def target_path(self, entry: MediaEntry) -> Path:
        directory = self.storage_root / entry.static_subdir if entry.static_subdir else self.storage_root
        return directory / entry.static_name

    async def download_one(self, client: httpx.AsyncClient, asset_id: str, entry: MediaEntry) -> MediaResult:
        if not entry.url:
            logger.warning("Media entry %s of asset %s has no source URL", entry.key, asset_id)
            return MediaResult(asset_id, entry.key, entry.url, MediaStatus.FAILED, error="missing source URL")
        target = self.target_path(entry)
        tmp: Optional[Path] = None
        logger.info("Downloading file %s", entry.url)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".part")
            tmp = Path(tmp_name)
            with os.fdopen(fd, "wb") as fh:
                async with client.stream("GET", entry.url) as resp:
                    resp.raise_for_status()
                    async for chunk in resp.aiter_bytes():
                        fh.write(chunk)
            shutil.move(str(tmp), str(target))
        except (httpx.HTTPError, OSError) as e:
            logger.warning("Error downloading file %s to %s: %s", entry.url, target, e)
            return MediaResult(asset_id, entry.key, entry.url, MediaStatus.FAILED, error=str(e))
        finally:
            if tmp is not None:
                tmp.unlink(missing_ok=True)
        logger.debug("Finished downloading file %s to %s", entry.url, target)
        return MediaResult(asset_id, entry.key, entry.url, MediaStatus.DOWNLOADED)

    async def download(self, records: List[AssetRecord]) -> MediaSummary:
        """Download every selected binary once, keyed by source URL."""
        unique: Dict[str, Tuple[str, MediaEntry]] = {}
        for record in records:
            if not record.is_digital_asset:
                continue
            for entry in get_media_list(record.data, self.renditions, self.root_dir, self.url_prefix):
                unique[entry.url] = (record.id, entry)

        self.prepare()
        async with self._client() as client:
            results = await asyncio.gather(
                *(self.download_one(client, asset_id, entry) for asset_id, entry in unique.values())
            )
        summary = MediaSummary(list(results))
        logger.info(
            "Static download: %d files written, %d failed",
            summary.count(MediaStatus.DOWNLOADED),
            summary.count(MediaStatus.FAILED),
        )
        return summary
