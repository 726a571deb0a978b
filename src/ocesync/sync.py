"""One synchronization run: fetch, normalize, download media, materialize.

`ContentSync` wires the connector, the normalizer, the media synchronizer and
the materializer around a `NodeRegistry` created for the run. The run either
completes with best-effort data (isolated media failures are reported) or
logs the error and produces no nodes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ocesync.config import Settings
from ocesync.connectors.auth import resolve_authorization
from ocesync.connectors.base_connector import BaseConnector
from ocesync.connectors.content import ContentConnector
from ocesync.host.base import Cache, FileFetcher
from ocesync.host.cache import SqlCache
from ocesync.host.files import RemoteFileFetcher
from ocesync.host.registry import NodeRegistry
from ocesync.processing.materialize import materialize
from ocesync.processing.media import MediaStatus, MediaSummary, MediaSynchronizer, StaticMediaDownloader
from ocesync.processing.normalize import AssetRecord, normalize_entities, tag_records

logger = logging.getLogger(__name__)

MANIFEST_NAME = "nodes.json"


@dataclass
class SyncReport:
    items: int = 0
    assets: int = 0
    reused: int = 0
    downloaded: int = 0
    failed: int = 0
    nodes: int = 0
    links: int = 0
    manifest: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def add_media(self, summary: MediaSummary) -> None:
        self.reused += summary.count(MediaStatus.REUSED)
        self.downloaded += summary.count(MediaStatus.DOWNLOADED)
        self.failed += summary.count(MediaStatus.FAILED)


class ContentSync(BaseConnector):
    """Synchronizes one content channel into a node manifest and local files."""

    def __init__(self, settings: Settings, *, cache: Optional[Cache] = None) -> None:
        self.settings = settings
        self._cache = cache

    @property
    def output_dir(self) -> Path:
        return Path(self.settings.app.output_dir)

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / MANIFEST_NAME

    def _get_cache(self) -> Cache:
        if self._cache is None:
            self._cache = SqlCache.from_url(self.settings.cache.url)
        return self._cache

    async def _authorize(self) -> str:
        server = self.settings.server
        return await resolve_authorization(
            server.auth_str,
            self.settings.oauth,
            proxy_url=server.proxy_url,
            timeout=server.timeout,
        )

    def _make_connector(self, authorization: str) -> ContentConnector:
        server = self.settings.server
        items = self.settings.items
        return ContentConnector(
            content_server=server.content_server or "",
            channel_token=server.channel_token or "",
            authorization=authorization,
            limit=items.limit,
            query=items.query,
            protocol=items.protocol,
            preview=server.preview,
            strict_listing=items.strict,
            proxy_url=server.proxy_url,
            timeout=server.timeout,
            debug_dir=Path(self.settings.app.debug_dir) if self.settings.app.debug else None,
        )

    def _make_fetcher(self, registry: NodeRegistry) -> FileFetcher:
        return RemoteFileFetcher(
            root_dir=self.output_dir / "files",
            registry=registry,
            proxy_url=self.settings.server.proxy_url,
            timeout=self.settings.server.timeout,
        )

    async def fetch_content(self) -> List[Dict[str, Any]]:
        authorization = await self._authorize()
        return await self._make_connector(authorization).fetch_all()

    async def _sync_media(
        self, records: List[AssetRecord], registry: NodeRegistry, authorization: str
    ) -> MediaSummary:
        media = self.settings.media
        if media.static_asset_download:
            downloader = StaticMediaDownloader(
                public_dir=Path(media.public_dir),
                root_dir=media.static_asset_root_dir,
                url_prefix=media.static_url_prefix,
                renditions=media.renditions,
                authorization=authorization,
                proxy_url=self.settings.server.proxy_url,
                timeout=self.settings.server.timeout,
            )
            return await downloader.download(records)

        registry.load_previous(self.manifest_path)
        synchronizer = MediaSynchronizer(
            cache=self._get_cache(),
            fetcher=self._make_fetcher(registry),
            registry=registry,
            renditions=media.renditions,
            authorization=authorization,
        )
        return await synchronizer.sync(records)

    async def sync(self) -> SyncReport:
        report = SyncReport()
        server = self.settings.server
        registry = NodeRegistry()
        logger.info(
            "Syncing channel from %s (%s)",
            server.content_server,
            "preview" if server.preview else "published",
        )
        try:
            authorization = await self._authorize()
            raw_items = await self._make_connector(authorization).fetch_all()

            records = tag_records(
                normalize_entities(
                    raw_items,
                    mint_id=registry.mint_id,
                    channel_token=server.channel_token or "",
                    strict_fields=self.settings.media.strict_fields,
                )
            )
            report.items = len(records)
            report.assets = sum(1 for r in records if r.is_digital_asset)

            report.add_media(await self._sync_media(records, registry, authorization))
            logger.info("Completed download of assets")

            result = materialize(records, registry, content_server=server.content_server or "")
            report.nodes = result.nodes
            report.links = result.links
            if registry.stale:
                logger.info("Pruning %d file nodes no longer referenced", len(registry.stale))
            report.manifest = registry.dump(self.manifest_path)
            logger.info("Completed node creation: %s", report.manifest)
        except Exception as e:
            logger.exception("Sync failed: %s", e)
            report.error = str(e)
        finally:
            registry.clear()
        return report
