"""Interfaces of the host capabilities the sync pipeline consumes.

The pipeline only needs a durable key/value cache and a way to turn a remote
URL into a registered file node. Concrete implementations live beside this
module; tests substitute lightweight fakes.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class Cache(Protocol):
    """Durable key/value cache that survives across sync runs."""

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value stored under `key`, or None."""
        ...

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        """Store `value` under `key`, replacing any previous value."""
        ...


class FileFetcher(Protocol):
    """Downloads a remote binary and registers it as a File node."""

    async def fetch(self, url: str, *, headers: Dict[str, str], name: str) -> Dict[str, Any]:
        """Download `url` and return the registered file node.

        Implementations should raise `ocesync.exceptions.MediaDownloadError` on failure.
        """
        ...
