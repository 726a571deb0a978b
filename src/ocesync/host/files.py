"""Remote binary download into a content-addressed file store.

Each download is streamed to a temporary file while its sha256 digest is
computed, then moved to `<root>/<digest[:2]>/<digest><ext>`. Identical bytes
downloaded under different URLs share one file on disk.
"""
from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
import tempfile
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import httpx

from ocesync.exceptions import MediaDownloadError
from ocesync.host.registry import NodeRegistry

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def guess_extension(url: str, content_type: Optional[str]) -> str:
    suffix = PurePosixPath(urlparse(url).path).suffix
    if suffix:
        return suffix.lower()
    if content_type:
        ext = mimetypes.guess_extension(content_type.split(";")[0].strip())
        if ext:
            return ext
    return ""


class RemoteFileFetcher:
    def __init__(
        self,
        *,
        root_dir: Path,
        registry: NodeRegistry,
        proxy_url: Optional[str] = None,
        timeout: float = 60.0,
    ) -> None:
        self.root_dir = Path(root_dir)
        self.registry = registry
        self.proxy_url = proxy_url
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            proxy=self.proxy_url or None,
            follow_redirects=True,
            headers={"Accept": "*/*", "User-Agent": "oracle/ocesync"},
        )

    async def fetch(self, url: str, *, headers: Dict[str, str], name: str) -> Dict[str, Any]:
        digest = hashlib.sha256()
        tmp_path: Optional[Path] = None
        size = 0
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.root_dir, prefix=".download-")
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as fh:
                async with self._client() as client:
                    async with client.stream("GET", url, headers=headers) as resp:
                        resp.raise_for_status()
                        content_type = resp.headers.get("content-type")
                        async for chunk in resp.aiter_bytes(_CHUNK_SIZE):
                            digest.update(chunk)
                            size += len(chunk)
                            fh.write(chunk)

            hexdigest = digest.hexdigest()
            ext = guess_extension(url, content_type)
            target = self.root_dir / hexdigest[:2] / f"{hexdigest}{ext}"
            target.parent.mkdir(parents=True, exist_ok=True)
            if not target.exists():
                tmp_path.replace(target)
            absolute_path = str(target.resolve())
        except (httpx.HTTPError, OSError) as e:
            raise MediaDownloadError(f"Failed downloading {url}: {e}", url=url) from e
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)

        node: Dict[str, Any] = {
            "id": self.registry.mint_id(f"file-{url}"),
            "children": [],
            "parent": None,
            "internal": {
                "type": "File",
                "contentDigest": hexdigest,
                "mediaType": (content_type or "").split(";")[0].strip() or None,
            },
            "url": url,
            "name": name,
            "ext": ext,
            "size": size,
            "absolutePath": absolute_path,
            "fields": {},
        }
        self.registry.register(node)
        logger.debug("Stored %s as %s", url, target)
        return node
