"""Host-side collaborators: node registry, durable cache and remote file fetch."""

from .base import Cache, FileFetcher
from .cache import SqlCache
from .files import RemoteFileFetcher
from .registry import NodeRegistry

__all__ = ["Cache", "FileFetcher", "NodeRegistry", "RemoteFileFetcher", "SqlCache"]
